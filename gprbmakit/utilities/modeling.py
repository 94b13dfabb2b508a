import numpy as np
from sklearn.gaussian_process import GaussianProcessRegressor


class GPRModel:
  def __init__(
      self,
      estimator: GaussianProcessRegressor,
      ind_vars: list[str],
      dep_var: str,
      param_count: int
  ):
    self.estimator = estimator
    self.ind_vars = list(ind_vars)
    self.dep_var = dep_var
    self.param_count = param_count


class GWRModel:
  def __init__(self,
      coords_train: list[tuple[float, float]],
      X_train: np.ndarray,
      y_train: np.ndarray,
      gwr_bw: float,
      ind_vars: list[str],
      fixed: bool,
      kernel: str
  ):
    self.coords_train = coords_train
    self.X_train = X_train
    self.y_train = y_train
    self.gwr_bw = gwr_bw
    self.ind_vars = list(ind_vars)
    self.fixed = fixed
    self.kernel = kernel
