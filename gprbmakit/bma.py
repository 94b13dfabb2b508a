import numpy as np
import pandas as pd

from gprbmakit.errors import NoValidModelsError, PredictionFailureError, SkippedModel, warn_skipped
from gprbmakit.scoring import CRITERIA, ScoredModel, scores_to_df
from gprbmakit.utilities.settings import get_bma_settings, get_criterion_direction
from gprbmakit.utilities.stats import calc_rmse


class BMAResults:
  """
  Weighted-average predictions of every scored model, one set per criterion.

  Attributes:
      scored_models (list[ScoredModel]): The models that took part, in id order
      weights (dict[str, numpy.ndarray]): Final weight vector per criterion, aligned with scored_models;
          models that failed to predict hold weight 0
      predictions (pandas.DataFrame): Columns "observed" and one column per criterion
      rmse (dict[str, float]): RMSE per criterion
      best_criterion (str): Criterion with the lowest RMSE (ties resolved by priority)
      inclusion (pandas.DataFrame): Inclusion probability per predictor (rows) and criterion (columns)
      failures (list[SkippedModel]): Models excluded because their prediction failed
  """

  def __init__(
      self,
      scored_models: list[ScoredModel],
      weights: dict[str, np.ndarray],
      predictions: pd.DataFrame,
      rmse: dict[str, float],
      best_criterion: str,
      inclusion: pd.DataFrame,
      failures: list[SkippedModel]
  ):
    self.scored_models = scored_models
    self.weights = weights
    self.predictions = predictions
    self.rmse = rmse
    self.best_criterion = best_criterion
    self.inclusion = inclusion
    self.failures = failures

  @property
  def best_predictions(self) -> np.ndarray:
    return self.predictions[self.best_criterion].to_numpy()

  def weights_df(self) -> pd.DataFrame:
    df = scores_to_df(self.scored_models)
    for criterion in CRITERIA:
      df[f"w_{criterion}"] = self.weights[criterion]
    return df

  def top_models(self, criterion: str, n: int = 10) -> pd.DataFrame:
    df = self.weights_df()
    df = df[df[f"w_{criterion}"].gt(0)]
    return df.sort_values(by=[f"w_{criterion}", "model_id"], ascending=[False, True]).head(n).reset_index(drop=True)


def calc_weights(scores: np.ndarray | list[float], direction: str = "lower") -> np.ndarray:
  """
  Turn one criterion's scores into a probability distribution over models.

  lower:  w_i = exp(-0.5 * (s_i - min(s))) / sum_j exp(-0.5 * (s_j - min(s)))
  higher: w_i = exp(s_i - max(s)) / sum_j exp(s_j - max(s))

  Shifting by the min/max only keeps exp() from overflowing; it cancels in the normalization.

  :param scores: One score per model.
  :type scores: numpy.ndarray or list[float]
  :param direction: "lower" if lower scores are better, "higher" otherwise.
  :type direction: str
  :returns: Non-negative weights summing to 1.
  :rtype: numpy.ndarray
  :raises ValueError: If there are no scores, a score is not finite, or the direction is unknown.
  """
  scores = np.asarray(scores, dtype=np.float64)
  if scores.size == 0:
    raise ValueError("Cannot compute weights over zero models")
  if not np.all(np.isfinite(scores)):
    raise ValueError("All scores must be finite")

  if direction == "lower":
    z = -0.5 * (scores - scores.min())
  elif direction == "higher":
    z = scores - scores.max()
  else:
    raise ValueError(f"Unknown direction '{direction}', expected 'lower' or 'higher'")

  w = np.exp(z)
  return w / w.sum()


def calc_criterion_weights(scored_models: list[ScoredModel], settings: dict, valid: np.ndarray = None) -> dict[str, np.ndarray]:
  """
  Weight vector per criterion, aligned with scored_models. Models outside `valid` hold weight 0.
  """
  if len(scored_models) == 0:
    raise NoValidModelsError("No valid fitted models to average over")
  if valid is None:
    valid = np.ones(len(scored_models), dtype=bool)
  weights = {}
  for criterion in CRITERIA:
    scores = [sm.scores.get(criterion) for sm in scored_models]
    weights[criterion] = renormalize_weights(scores, valid, get_criterion_direction(settings, criterion))
  return weights


def renormalize_weights(scores: np.ndarray | list[float], valid: np.ndarray, direction: str = "lower") -> np.ndarray:
  """
  Drop the invalid models and recompute the weight distribution over the rest.

  Scores are shifted by the best surviving score, never by a dropped one.
  """
  scores = np.asarray(scores, dtype=np.float64)
  valid = np.asarray(valid, dtype=bool)
  if not valid.any():
    raise NoValidModelsError("No model is left after excluding failed predictions")
  weights = np.zeros(len(scores), dtype=np.float64)
  weights[valid] = calc_weights(scores[valid], direction)
  return weights


def predict_models(scored_models: list[ScoredModel], df: pd.DataFrame) -> tuple[np.ndarray, np.ndarray, list[SkippedModel]]:
  """
  Run every model's prediction contract on df.

  :returns: Tuple of (predictions of shape (models, observations) with NaN rows for failed models,
      boolean validity mask per model, failures).
  :rtype: tuple[numpy.ndarray, numpy.ndarray, list[SkippedModel]]
  """
  predictions = np.full((len(scored_models), len(df)), np.nan)
  valid = np.zeros(len(scored_models), dtype=bool)
  failures = []
  for i, sm in enumerate(scored_models):
    try:
      y_pred = sm.predict(df)
      if y_pred.shape != (len(df),) or not np.all(np.isfinite(y_pred)):
        raise PredictionFailureError(f"{sm.id}: prediction has shape {y_pred.shape} or non-finite values")
    except PredictionFailureError as e:
      failures.append(SkippedModel(sm.id, sm.predictor_set.fields, "predict", str(e)))
      continue
    predictions[i, :] = y_pred
    valid[i] = True
  return predictions, valid, failures


def calc_weighted_prediction(predictions: np.ndarray, weights: np.ndarray) -> np.ndarray:
  """
  Per-observation weighted average, sum_i w_i * prediction_i. Rows with zero weight are ignored entirely.
  """
  predictions = np.atleast_2d(np.asarray(predictions, dtype=np.float64))
  weights = np.asarray(weights, dtype=np.float64)
  used = weights > 0
  return weights[used] @ predictions[used, :]


def calc_inclusion_probabilities(scored_models: list[ScoredModel], weights: np.ndarray, variables: list[str] = None) -> pd.Series:
  """
  Posterior inclusion probability of each variable: the total weight of the models whose predictors contain it.

  :param scored_models: Models, aligned with weights.
  :type scored_models: list[ScoredModel]
  :param weights: Weight per model.
  :type weights: numpy.ndarray
  :param variables: Variables to report; defaults to every variable used by any model, in first-seen order.
  :type variables: list[str], optional
  :returns: Inclusion probability indexed by variable.
  :rtype: pandas.Series
  """
  if variables is None:
    variables = list(dict.fromkeys(f for sm in scored_models for f in sm.predictor_set.fields))
  probs = {}
  for v in variables:
    probs[v] = float(sum(w for sm, w in zip(scored_models, weights) if v in sm.predictor_set))
  return pd.Series(probs, name="inclusion_probability", dtype=np.float64)


def select_best_criterion(rmse: dict[str, float], priority: list[str] = None, tolerance: float = 0.0) -> str:
  """
  Pick the criterion with the lowest RMSE.

  Criteria whose RMSE is within `tolerance` of the minimum count as tied; the first of them in `priority`
  wins. NaN RMSEs never win.

  :param rmse: RMSE per criterion.
  :type rmse: dict[str, float]
  :param priority: Tie-break order; defaults to bic, map, spbic.
  :type priority: list[str], optional
  :param tolerance: Absolute tolerance for ties.
  :type tolerance: float, optional
  :returns: The selected criterion.
  :rtype: str
  """
  if priority is None:
    priority = list(CRITERIA)
  candidates = {k: v for k, v in rmse.items() if v is not None and not np.isnan(v)}
  if len(candidates) == 0:
    raise ValueError("No finite RMSE to select from")

  best = min(candidates.values())
  tied = [k for k, v in candidates.items() if v - best <= tolerance]

  order = list(priority) + [k for k in rmse if k not in priority]
  return sorted(tied, key=lambda k: order.index(k))[0]


def run_bma(scored_models: list[ScoredModel], df: pd.DataFrame, dep_var: str, settings: dict, verbose: bool = False) -> BMAResults:
  """
  Weight, average and evaluate every scored model under each criterion.

  This is the global reduction step: it needs the complete list of scored models. Models whose prediction
  fails are excluded and their weight is redistributed over the remaining models.

  :param scored_models: All scored models.
  :type scored_models: list[ScoredModel]
  :param df: Observations to predict, carrying the response.
  :type df: pandas.DataFrame
  :param dep_var: Response column.
  :type dep_var: str
  :param settings: Settings dictionary.
  :type settings: dict
  :param verbose: Whether to print verbose output.
  :type verbose: bool, optional
  :returns: The averaged predictions, weights, RMSEs and inclusion probabilities.
  :rtype: BMAResults
  :raises NoValidModelsError: If there are no scored models, or none can predict.
  """
  if len(scored_models) == 0:
    raise NoValidModelsError("No valid fitted models to average over")

  s = get_bma_settings(settings)
  if verbose:
    print(f"Averaging {len(scored_models)} models...")

  predictions, valid, failures = predict_models(scored_models, df)
  warn_skipped(failures)
  if not valid.any():
    raise NoValidModelsError("Every model failed to predict")
  weights = calc_criterion_weights(scored_models, settings, valid)

  observed = df[dep_var].to_numpy(dtype=np.float64)
  df_pred = pd.DataFrame({"observed": observed}, index=df.index)

  rmse = {}
  for criterion in CRITERIA:
    y_pred = calc_weighted_prediction(predictions, weights[criterion])
    df_pred[criterion] = y_pred
    rmse[criterion] = calc_rmse(y_pred, observed)

  best = select_best_criterion(rmse, s.get("tie_priority", list(CRITERIA)), s.get("tie_tolerance", 0.0))

  inclusion = pd.DataFrame({
    criterion: calc_inclusion_probabilities(scored_models, weights[criterion]) for criterion in CRITERIA
  })
  inclusion.index.name = "variable"

  if verbose:
    for criterion in CRITERIA:
      print(f"--> {criterion.upper():5s} RMSE = {rmse[criterion]:0.4f}")
    print(f"--> best criterion: {best.upper()}")

  return BMAResults(scored_models, weights, df_pred, rmse, best, inclusion, failures)
