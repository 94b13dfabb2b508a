import warnings

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from mgwr.gwr import GWR
from mgwr.sel_bw import Sel_BW
from sklearn.exceptions import ConvergenceWarning
from sklearn.gaussian_process import GaussianProcessRegressor

from gprbmakit.data import get_coords
from gprbmakit.enumeration import PredictorSet
from gprbmakit.errors import MissingPredictorError, FitFailureError, PredictionFailureError, \
  NumericDegeneracyError, SkippedModel, warn_skipped
from gprbmakit.kernel import make_gpr_kernel, kernel_hyperparameter_count
from gprbmakit.scoring import ScoringPolicy, ScoredModel, score_model
from gprbmakit.utilities.modeling import GPRModel, GWRModel
from gprbmakit.utilities.settings import get_gpr_settings, get_gwr_settings, get_bma_settings, \
  get_candidate_vars, get_coordinate_fields
from gprbmakit.utilities.stats import calc_mse_r2_adj_r2
from gprbmakit.utilities.timing import TimingData


class FittedModel:
  """
  One Gaussian Process regressor trained on the observations restricted to a single predictor set.

  Attributes:
      predictor_set (PredictorSet): The predictors the model was trained on
      model (GPRModel): Opaque fitted state
  """

  def __init__(self, predictor_set: PredictorSet, model: GPRModel):
    self.predictor_set = predictor_set
    self.model = model

  @property
  def id(self) -> str:
    return self.predictor_set.id

  @property
  def fields(self) -> tuple[str, ...]:
    return self.predictor_set.fields

  @property
  def param_count(self) -> int:
    return self.model.param_count

  def predict(self, df: pd.DataFrame) -> np.ndarray:
    return predict_gpr(self, df)

  def __repr__(self):
    return f"FittedModel({self.id}: {', '.join(self.fields)}, qM={self.param_count})"


class SingleModelResults:
  """
  In-sample results for one baseline model.

  Attributes:
      type (str): Model type identifier
      dep_var (str): Response column
      ind_vars (list[str]): Predictors used
      model: The fitted model container
      y (numpy.ndarray): Observed values
      y_pred (numpy.ndarray): Predicted values
      mse (float): Mean squared error
      rmse (float): Root mean squared error
      r2 (float): R-squared
      adj_r2 (float): Adjusted R-squared
      timing (TimingData): Timing data for the fit and prediction
  """

  def __init__(self,
      type: str,
      dep_var: str,
      ind_vars: list[str],
      model,
      y: np.ndarray,
      y_pred: np.ndarray,
      timing: TimingData
  ):
    self.type = type
    self.dep_var = dep_var
    self.ind_vars = list(ind_vars)
    self.model = model
    self.y = np.asarray(y, dtype=np.float64)
    self.y_pred = np.asarray(y_pred, dtype=np.float64)
    self.timing = timing

    mse, r2, adj_r2 = calc_mse_r2_adj_r2(self.y_pred, self.y, len(self.ind_vars))
    self.mse = float(mse)
    self.rmse = float(np.sqrt(mse))
    self.r2 = float(r2)
    self.adj_r2 = float(adj_r2)

  def summary(self):
    str = ""
    str += f"Model type: {self.type}\n"
    str += f"-->Rows   : {len(self.y)}\n"
    str += f"-->RMSE   : {self.rmse:8.4f}\n"
    str += f"-->R2     : {self.r2:8.4f}\n"
    str += f"-->Adj R2 : {self.adj_r2:8.4f}\n"
    return str


# GPR

def count_parameters(estimator: GaussianProcessRegressor, n_features: int, settings: dict) -> int:
  """
  Parameter count qM of a fitted GPR.

  "predictors_plus_hyperparameters" (default) counts one parameter per predictor plus the fitted kernel's
  free hyperparameters; "hyperparameters" counts the kernel hyperparameters only.
  """
  mode = get_gpr_settings(settings).get("parameter_count", "predictors_plus_hyperparameters")
  n_hyper = kernel_hyperparameter_count(estimator.kernel_)
  if mode == "hyperparameters":
    return n_hyper
  elif mode == "predictors_plus_hyperparameters":
    return n_features + n_hyper
  raise ValueError(f"Unknown parameter_count mode '{mode}'")


def fit_gpr(df: pd.DataFrame, predictor_set: PredictorSet, dep_var: str, settings: dict) -> FittedModel:
  """
  Fit one Gaussian Process regressor on every observation, restricted to a predictor set's fields.

  :param df: Observations.
  :type df: pandas.DataFrame
  :param predictor_set: Predictors to train on.
  :type predictor_set: PredictorSet
  :param dep_var: Response column.
  :type dep_var: str
  :param settings: Settings dictionary.
  :type settings: dict
  :returns: The fitted model.
  :rtype: FittedModel
  :raises MissingPredictorError: If any of the fields is not a column of df.
  :raises FitFailureError: If the GP optimizer errors or fails to converge. Other convergence warnings, such as a
      hyperparameter ending near its bound, fail the fit only when `fail_on_convergence_warning` is set.
  """
  missing = predictor_set.missing_fields(df.columns)
  if len(missing) > 0:
    raise MissingPredictorError(f"Fields not found in observations: {missing}")

  s = get_gpr_settings(settings)
  estimator = GaussianProcessRegressor(
    kernel=make_gpr_kernel(settings),
    alpha=s.get("alpha", 1e-10),
    normalize_y=s.get("normalize_y", True),
    n_restarts_optimizer=s.get("n_restarts_optimizer", 0),
    random_state=s.get("random_state", 0)
  )

  X = df[list(predictor_set.fields)].to_numpy(dtype=np.float64)
  y = df[dep_var].to_numpy(dtype=np.float64)

  try:
    with warnings.catch_warnings():
      if s.get("fail_on_convergence_warning", False):
        warnings.simplefilter("error", ConvergenceWarning)
      else:
        warnings.simplefilter("ignore", ConvergenceWarning)
      # optimizer non-convergence always fails the fit
      warnings.filterwarnings("error", message=r".*failed to converge", category=ConvergenceWarning)
      estimator.fit(X, y)
  except (ValueError, np.linalg.LinAlgError, ConvergenceWarning) as e:
    raise FitFailureError(f"GPR fit failed for {predictor_set.id}: {e}") from e

  param_count = count_parameters(estimator, predictor_set.size, settings)
  return FittedModel(predictor_set, GPRModel(estimator, predictor_set.fields, dep_var, param_count))


def predict_gpr(fitted: FittedModel, df: pd.DataFrame) -> np.ndarray:
  """
  Predict one value per observation with a fitted GPR, using only the fields it was trained on.

  Prediction is deterministic: the posterior mean, no sampling.

  :param fitted: The fitted model.
  :type fitted: FittedModel
  :param df: Observations carrying the model's predictor fields.
  :type df: pandas.DataFrame
  :returns: Predicted values, shape (len(df),).
  :rtype: numpy.ndarray
  :raises PredictionFailureError: If the stored predictors disagree with the model state or with df.
  """
  model = fitted.model
  if list(model.ind_vars) != list(fitted.fields):
    raise PredictionFailureError(
      f"{fitted.id}: stored predictors {list(fitted.fields)} differ from trained predictors {model.ind_vars}"
    )
  missing = fitted.predictor_set.missing_fields(df.columns)
  if len(missing) > 0:
    raise PredictionFailureError(f"{fitted.id}: fields not found at prediction time: {missing}")
  if len(df) == 0:
    return np.array([])

  X = df[model.ind_vars].to_numpy(dtype=np.float64)
  return np.asarray(model.estimator.predict(X), dtype=np.float64).flatten()


def fit_models(df: pd.DataFrame, predictor_sets: dict[str, PredictorSet] | list[PredictorSet], dep_var: str, settings: dict, verbose: bool = False) -> tuple[list[FittedModel], list[SkippedModel]]:
  """
  Fit one GPR per predictor set, sequentially. Missing predictors and fit failures skip the subset.

  :returns: Tuple of (fitted models in input order, skipped subsets).
  :rtype: tuple[list[FittedModel], list[SkippedModel]]
  """
  predictor_sets = _as_list(predictor_sets)
  if verbose:
    print(f"Fitting {len(predictor_sets)} GPR models...")
  fitted = []
  skipped = []
  for ps in predictor_sets:
    try:
      fitted.append(fit_gpr(df, ps, dep_var, settings))
    except (MissingPredictorError, FitFailureError) as e:
      skipped.append(SkippedModel(ps.id, ps.fields, "fit", str(e)))
  warn_skipped(skipped)
  if verbose:
    print(f"--> fitted {len(fitted)} models, skipped {len(skipped)}")
  return fitted, skipped


def fit_and_score_models(
    df: pd.DataFrame,
    predictor_sets: dict[str, PredictorSet] | list[PredictorSet],
    dep_var: str,
    settings: dict,
    policy: ScoringPolicy = None,
    verbose: bool = False
) -> tuple[list[ScoredModel], list[SkippedModel]]:
  """
  Fit and score one GPR per predictor set on a bounded worker pool.

  Each predictor set is an independent task; results come back in submission order, so the scored list is
  ordered like the input. Failures are contained per task and reported as skipped subsets.

  :param df: Observations.
  :type df: pandas.DataFrame
  :param predictor_sets: Predictor sets to fit, as returned by enumerate_predictor_sets.
  :type predictor_sets: dict[str, PredictorSet] or list[PredictorSet]
  :param dep_var: Response column.
  :type dep_var: str
  :param settings: Settings dictionary; `modeling.bma.n_jobs` bounds the pool (-1 = all cores).
  :type settings: dict
  :param policy: Scoring policy.
  :type policy: ScoringPolicy, optional
  :param verbose: Whether to print verbose output.
  :type verbose: bool, optional
  :returns: Tuple of (scored models, skipped subsets).
  :rtype: tuple[list[ScoredModel], list[SkippedModel]]
  """
  predictor_sets = _as_list(predictor_sets)
  if policy is None:
    policy = ScoringPolicy()
  n_jobs = get_bma_settings(settings).get("n_jobs", -1)

  # Only ship the columns the tasks can use to each worker
  columns = [c for c in dict.fromkeys(get_candidate_vars(settings) + [f for ps in predictor_sets for f in ps.fields]) if c in df]
  df_slim = df[columns + [dep_var]].copy()

  if verbose:
    print(f"Fitting and scoring {len(predictor_sets)} GPR models (n_jobs={n_jobs})...")

  outcomes = Parallel(n_jobs=n_jobs)(
    delayed(_fit_and_score_one)(df_slim, ps, dep_var, settings, policy) for ps in predictor_sets
  )

  scored = [o for o in outcomes if isinstance(o, ScoredModel)]
  skipped = [o for o in outcomes if isinstance(o, SkippedModel)]
  warn_skipped(skipped)

  if verbose:
    print(f"--> scored {len(scored)} models, skipped {len(skipped)}")
  return scored, skipped


def _fit_and_score_one(df: pd.DataFrame, predictor_set: PredictorSet, dep_var: str, settings: dict, policy: ScoringPolicy) -> ScoredModel | SkippedModel:
  try:
    fitted = fit_gpr(df, predictor_set, dep_var, settings)
  except (MissingPredictorError, FitFailureError) as e:
    return SkippedModel(predictor_set.id, predictor_set.fields, "fit", str(e))
  try:
    return score_model(fitted, df, dep_var, policy)
  except (NumericDegeneracyError, PredictionFailureError) as e:
    return SkippedModel(predictor_set.id, predictor_set.fields, "score", str(e))


def _as_list(predictor_sets) -> list[PredictorSet]:
  if isinstance(predictor_sets, dict):
    return list(predictor_sets.values())
  return list(predictor_sets)


# Baselines

def run_gpr(df: pd.DataFrame, dep_var: str, settings: dict, verbose: bool = False) -> SingleModelResults:
  """
  Fit the plain GPR baseline: a single model over every candidate predictor present in df.

  :param df: Observations.
  :type df: pandas.DataFrame
  :param dep_var: Response column.
  :type dep_var: str
  :param settings: Settings dictionary.
  :type settings: dict
  :param verbose: Whether to print verbose output.
  :type verbose: bool, optional
  :returns: In-sample results of the baseline.
  :rtype: SingleModelResults
  """
  timing = TimingData()
  timing.start("total")

  ind_vars = [v for v in get_candidate_vars(settings) if v in df]
  if len(ind_vars) == 0:
    raise ValueError("No candidate predictors found in observations, cannot fit the GPR baseline")
  predictor_set = PredictorSet(len(ind_vars), 1, tuple(ind_vars))

  if verbose:
    print(f"Fitting GPR baseline on {len(ind_vars)} predictors...")

  timing.start("train")
  fitted = fit_gpr(df, predictor_set, dep_var, settings)
  timing.stop("train")

  timing.start("predict")
  y_pred = fitted.predict(df)
  timing.stop("predict")

  timing.stop("total")
  return SingleModelResults("gpr", dep_var, ind_vars, fitted, df[dep_var].to_numpy(), y_pred, timing)


def get_gwr_ind_vars(df: pd.DataFrame, settings: dict) -> list[str]:
  ind_vars = get_gwr_settings(settings).get("ind_vars", None)
  if ind_vars is None:
    coordinate_fields = set(get_coordinate_fields(settings))
    ind_vars = [v for v in get_candidate_vars(settings) if v not in coordinate_fields]
  ind_vars = [v for v in ind_vars if v in df]
  if len(ind_vars) == 0:
    raise ValueError("No GWR predictors found in observations. Please check settings `modeling.gwr.ind_vars`")
  return ind_vars


def run_gwr(df: pd.DataFrame, dep_var: str, settings: dict, verbose: bool = False) -> SingleModelResults:
  """
  Fit the GWR baseline by searching for the optimal bandwidth, and return its in-sample predictions.

  :param df: Observations, with "longitude" and "latitude" columns.
  :type df: pandas.DataFrame
  :param dep_var: Response column.
  :type dep_var: str
  :param settings: Settings dictionary.
  :type settings: dict
  :param verbose: Whether to print verbose output.
  :type verbose: bool, optional
  :returns: In-sample results of the GWR model.
  :rtype: SingleModelResults
  """
  timing = TimingData()
  timing.start("total")

  timing.start("setup")
  s = get_gwr_settings(settings)
  kernel = s.get("kernel", "bisquare")
  fixed = s.get("fixed", False)
  ind_vars = get_gwr_ind_vars(df, settings)

  coords = get_coords(df)
  y = df[dep_var].to_numpy().reshape((-1, 1)).astype(np.float64)
  X = df[ind_vars].to_numpy().astype(np.float64)

  # add a very small amount of noise to X to prevent singular local design matrices
  rng = np.random.default_rng(s.get("seed", 0))
  X = X + rng.normal(0, 1e-6, X.shape)
  timing.stop("setup")

  timing.start("parameter_search")
  if verbose:
    print("Tuning GWR: searching for optimal bandwidth...")
  try:
    gwr_selector = Sel_BW(coords, y, X, fixed=fixed, kernel=kernel)
    gwr_bw = gwr_selector.search()
  except ValueError:
    fixed = True
    gwr_selector = Sel_BW(coords, y, X, fixed=fixed, kernel=kernel)
    gwr_bw = gwr_selector.search()
  if verbose:
    print(f"--> optimal bandwidth = {gwr_bw:0.2f}")
  timing.stop("parameter_search")

  timing.start("train")
  gwr = GWR(coords, y, X, gwr_bw, fixed=fixed, kernel=kernel)
  gwr_results = gwr.fit()
  timing.stop("train")

  y_pred = np.asarray(gwr_results.predy).flatten()
  gwr_model = GWRModel(coords, X, y, gwr_bw, ind_vars, fixed, kernel)

  timing.stop("total")
  return SingleModelResults("gwr", dep_var, ind_vars, gwr_model, y.flatten(), y_pred, timing)
