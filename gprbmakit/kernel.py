import numpy as np
from scipy.spatial.distance import cdist
from sklearn.gaussian_process.kernels import ConstantKernel, RBF, WhiteKernel, Kernel

from gprbmakit.utilities.settings import get_gpr_settings


def squared_exponential(X1: np.ndarray, X2: np.ndarray | None = None, length_scale: float = 1.0, variance: float = 1.0) -> np.ndarray:
  """
  Isotropic squared-exponential covariance, k(x, x') = variance * exp(-||x - x'||^2 / (2 * length_scale^2)).

  The value depends only on the Euclidean distance between the two feature vectors.

  :param X1: Array (n1, d) of feature vectors.
  :type X1: numpy.ndarray
  :param X2: Array (n2, d) of feature vectors; defaults to X1.
  :type X2: numpy.ndarray, optional
  :param length_scale: Characteristic length scale, must be positive.
  :type length_scale: float
  :param variance: Signal variance, must be positive.
  :type variance: float
  :returns: Covariance matrix of shape (n1, n2).
  :rtype: numpy.ndarray
  """
  if length_scale <= 0:
    raise ValueError(f"length_scale must be positive, got {length_scale}")
  if variance <= 0:
    raise ValueError(f"variance must be positive, got {variance}")

  X1 = np.atleast_2d(np.asarray(X1, dtype=np.float64))
  X2 = X1 if X2 is None else np.atleast_2d(np.asarray(X2, dtype=np.float64))
  if X1.shape[1] != X2.shape[1]:
    raise ValueError(f"Feature dimensions differ: {X1.shape[1]} VS {X2.shape[1]}")

  sq_dists = cdist(X1 / length_scale, X2 / length_scale, metric="sqeuclidean")
  return variance * np.exp(-0.5 * sq_dists)


def make_gpr_kernel(settings: dict) -> Kernel:
  """
  Build the covariance used for every GPR fit: a signal variance times an isotropic RBF, plus white noise.

  A single scalar length scale keeps the RBF isotropic no matter how many predictors a model has. The
  white-noise term only enters the training covariance, so in-sample predictions smooth rather than
  interpolate the response.

  :param settings: Settings dictionary.
  :type settings: dict
  :returns: An unfitted scikit-learn kernel.
  :rtype: sklearn.gaussian_process.kernels.Kernel
  """
  s = get_gpr_settings(settings)
  constant_value = s.get("constant_value", 1.0)
  length_scale = s.get("length_scale", 1.0)
  length_scale_bounds = tuple(s.get("length_scale_bounds", (1e-2, 1e3)))
  noise_level = s.get("noise_level", 0.1)
  noise_level_bounds = tuple(s.get("noise_level_bounds", (1e-5, 1e1)))

  if not np.isscalar(length_scale):
    raise ValueError("length_scale must be a scalar; the kernel is isotropic")

  return (
    ConstantKernel(constant_value, constant_value_bounds=(1e-3, 1e3)) *
    RBF(length_scale=length_scale, length_scale_bounds=length_scale_bounds) +
    WhiteKernel(noise_level=noise_level, noise_level_bounds=noise_level_bounds)
  )


def kernel_hyperparameter_count(kernel: Kernel) -> int:
  # number of free (non-fixed) hyperparameters
  return int(kernel.n_dims)
