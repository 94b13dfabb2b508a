import numpy as np
import pandas as pd

from gprbmakit.errors import NumericDegeneracyError, PredictionFailureError, SkippedModel
from gprbmakit.utilities.settings import get_bma_settings
from gprbmakit.utilities.stats import calc_rss

CRITERIA = ("bic", "map", "spbic")


class ScoreTriple:
  """
  The three model-selection scores attached to one fitted model.

  Attributes:
      bic (float): Bayesian Information Criterion
      map (float): Laplace-approximated log posterior
      spbic (float): BIC with the added complexity term ln(g(qM))
  """

  def __init__(self, bic: float, map: float, spbic: float):
    self.bic = float(bic)
    self.map = float(map)
    self.spbic = float(spbic)

  def get(self, criterion: str) -> float:
    if criterion not in CRITERIA:
      raise ValueError(f"Unknown criterion '{criterion}', expected one of {CRITERIA}")
    return getattr(self, criterion)

  def as_dict(self) -> dict:
    return {"bic": self.bic, "map": self.map, "spbic": self.spbic}

  def __eq__(self, other):
    if not isinstance(other, ScoreTriple):
      return NotImplemented
    return self.as_dict() == other.as_dict()

  def __repr__(self):
    return f"ScoreTriple(bic={self.bic}, map={self.map}, spbic={self.spbic})"


class ScoredModel:
  """
  A fitted model together with its log-likelihood and score triple.

  Attributes:
      fitted (FittedModel): The fitted model
      log_likelihood (float): Gaussian log-likelihood of the in-sample residuals
      rss (float): Residual sum of squares
      n (int): Number of observations scored
      scores (ScoreTriple): BIC, MAP and SPBIC
  """

  def __init__(self, fitted, log_likelihood: float, rss: float, n: int, scores: ScoreTriple):
    self.fitted = fitted
    self.log_likelihood = log_likelihood
    self.rss = rss
    self.n = n
    self.scores = scores

  @property
  def id(self) -> str:
    return self.fitted.id

  @property
  def predictor_set(self):
    return self.fitted.predictor_set

  @property
  def param_count(self) -> int:
    return self.fitted.param_count

  def predict(self, df: pd.DataFrame) -> np.ndarray:
    return self.fitted.predict(df)


# Policies

def identity_hessian(fitted_model, param_count: int) -> np.ndarray:
  """
  Stand-in for the Hessian of the log posterior: a qM x qM identity, so its log-determinant is 0.
  """
  return np.eye(param_count)


def identity_complexity(param_count: int) -> float:
  """Model-complexity scaling g(qM) = qM."""
  return float(param_count)


HESSIAN_POLICIES = {
  "identity": identity_hessian
}

COMPLEXITY_POLICIES = {
  "identity": identity_complexity
}


class ScoringPolicy:
  """
  The replaceable parts of the scoring math.

  :param hessian: Callable (fitted_model, param_count) -> Hessian matrix of the negative log posterior at the fit.
  :type hessian: callable, optional
  :param complexity: Callable (param_count) -> g(qM), must return a positive value.
  :type complexity: callable, optional
  """

  def __init__(self, hessian: callable = None, complexity: callable = None):
    self.hessian = hessian if hessian is not None else identity_hessian
    self.complexity = complexity if complexity is not None else identity_complexity

  def log_det_hessian(self, fitted_model, param_count: int) -> float:
    H = np.atleast_2d(np.asarray(self.hessian(fitted_model, param_count), dtype=np.float64))
    sign, logdet = np.linalg.slogdet(H)
    if sign <= 0 or not np.isfinite(logdet):
      raise NumericDegeneracyError(f"Hessian is not positive definite (sign={sign}, logdet={logdet})")
    return float(logdet)

  def log_complexity(self, param_count: int) -> float:
    g = self.complexity(param_count)
    if not np.isfinite(g) or g <= 0:
      raise NumericDegeneracyError(f"Complexity g(qM={param_count}) = {g} is not positive")
    return float(np.log(g))


def get_scoring_policy(settings: dict) -> ScoringPolicy:
  """
  Resolve the Hessian and complexity policies named in `modeling.bma.hessian` / `modeling.bma.complexity`.

  Either setting may also hold a callable directly.
  """
  s = get_bma_settings(settings)
  hessian = _resolve_policy(s.get("hessian", "identity"), HESSIAN_POLICIES, "hessian")
  complexity = _resolve_policy(s.get("complexity", "identity"), COMPLEXITY_POLICIES, "complexity")
  return ScoringPolicy(hessian, complexity)


def _resolve_policy(entry, registry: dict, name: str):
  if callable(entry):
    return entry
  if entry in registry:
    return registry[entry]
  raise ValueError(f"Unknown {name} policy '{entry}', expected one of {list(registry.keys())}")


# Scores

def calc_log_likelihood(y: np.ndarray, y_pred: np.ndarray) -> tuple[float, float]:
  """
  Gaussian log-likelihood of the residuals with the variance estimated as RSS/n.

  log L = -0.5 * (n * ln(RSS/n) + n * ln(2*pi))

  :param y: Observed values.
  :type y: numpy.ndarray
  :param y_pred: Predicted values.
  :type y_pred: numpy.ndarray
  :returns: Tuple of (log-likelihood, RSS).
  :rtype: tuple[float, float]
  :raises NumericDegeneracyError: If RSS is non-positive or not finite, or there are no observations.
  """
  y = np.asarray(y, dtype=np.float64)
  y_pred = np.asarray(y_pred, dtype=np.float64)
  n = len(y)
  if n == 0:
    raise NumericDegeneracyError("Cannot compute a log-likelihood over zero observations")
  rss = calc_rss(y_pred, y)
  if not np.isfinite(rss) or rss <= 0:
    raise NumericDegeneracyError(f"Residual sum of squares is {rss}; log(RSS/n) is undefined")
  log_likelihood = -0.5 * (n * np.log(rss / n) + n * np.log(2 * np.pi))
  return float(log_likelihood), rss


def calc_bic(log_likelihood: float, param_count: int, n: int) -> float:
  return log_likelihood - (param_count / 2) * np.log(n)


def calc_map(log_likelihood: float, param_count: int, log_det_hessian: float) -> float:
  return log_likelihood - 0.5 * log_det_hessian - (param_count / 2) * np.log(2 * np.pi)


def calc_spbic(log_likelihood: float, param_count: int, n: int, log_complexity: float) -> float:
  return log_likelihood - (param_count / 2) * np.log(n) + log_complexity


def score_model(fitted, df: pd.DataFrame, dep_var: str, policy: ScoringPolicy = None) -> ScoredModel:
  """
  Score one fitted model against the full observation set.

  :param fitted: The fitted model.
  :type fitted: FittedModel
  :param df: Observations, including the model's predictors and the response.
  :type df: pandas.DataFrame
  :param dep_var: Response column.
  :type dep_var: str
  :param policy: Hessian and complexity policies; defaults to the identity policies.
  :type policy: ScoringPolicy, optional
  :returns: The scored model.
  :rtype: ScoredModel
  :raises NumericDegeneracyError: If any of the scores would be non-finite.
  :raises PredictionFailureError: If the model cannot predict on df.
  """
  if policy is None:
    policy = ScoringPolicy()

  y = df[dep_var].to_numpy(dtype=np.float64)
  y_pred = fitted.predict(df)
  n = len(y)
  q = fitted.param_count

  log_likelihood, rss = calc_log_likelihood(y, y_pred)

  bic = calc_bic(log_likelihood, q, n)
  _map = calc_map(log_likelihood, q, policy.log_det_hessian(fitted, q))
  spbic = calc_spbic(log_likelihood, q, n, policy.log_complexity(q))

  scores = ScoreTriple(bic, _map, spbic)
  for criterion, value in scores.as_dict().items():
    if not np.isfinite(value):
      raise NumericDegeneracyError(f"{criterion.upper()} score is not finite ({value})")

  return ScoredModel(fitted, log_likelihood, rss, n, scores)


def score_models(fitted_models: list, df: pd.DataFrame, dep_var: str, policy: ScoringPolicy = None, verbose: bool = False) -> tuple[list[ScoredModel], list[SkippedModel]]:
  """
  Score each fitted model. Models whose score is degenerate or that fail to predict are skipped, not fatal.

  :returns: Tuple of (scored models in input order, skipped models).
  :rtype: tuple[list[ScoredModel], list[SkippedModel]]
  """
  scored = []
  skipped = []
  for fitted in fitted_models:
    try:
      scored.append(score_model(fitted, df, dep_var, policy))
    except (NumericDegeneracyError, PredictionFailureError) as e:
      skipped.append(SkippedModel(fitted.id, fitted.predictor_set.fields, "score", str(e)))
  if verbose:
    print(f"--> scored {len(scored)} models, skipped {len(skipped)}")
  return scored, skipped


def scores_to_df(scored_models: list[ScoredModel]) -> pd.DataFrame:
  data = {
    "model_id": [],
    "predictors": [],
    "size": [],
    "param_count": [],
    "log_likelihood": [],
    "rss": [],
    "bic": [],
    "map": [],
    "spbic": []
  }
  for sm in scored_models:
    data["model_id"].append(sm.id)
    data["predictors"].append(",".join(sm.predictor_set.fields))
    data["size"].append(sm.predictor_set.size)
    data["param_count"].append(sm.param_count)
    data["log_likelihood"].append(sm.log_likelihood)
    data["rss"].append(sm.rss)
    for criterion in CRITERIA:
      data[criterion].append(sm.scores.get(criterion))
  return pd.DataFrame(data)
