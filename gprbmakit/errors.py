import warnings


class MissingPredictorError(ValueError):
  """A predictor set references a field that is not present in the observations."""


class NumericDegeneracyError(ValueError):
  """A score would require the log of a non-positive quantity (e.g. a zero residual sum of squares)."""


class FitFailureError(RuntimeError):
  """The Gaussian Process fit raised or failed to converge."""


class PredictionFailureError(ValueError):
  """A fitted model's stored predictors no longer match the fields available at prediction time."""


class NoValidModelsError(ValueError):
  """Nothing survived fitting and scoring, so there is nothing to average over."""


class SkippedModelWarning(UserWarning):
  pass


class SkippedModel:
  """
  Record of one predictor set that was dropped from the run, and why.

  Attributes:
      model_id (str): Predictor set id
      predictors (tuple[str]): The predictor set's fields
      stage (str): Where it was dropped: "fit", "score" or "predict"
      reason (str): Human-readable cause
  """

  def __init__(self, model_id: str, predictors, stage: str, reason: str):
    self.model_id = model_id
    self.predictors = tuple(predictors)
    self.stage = stage
    self.reason = reason

  def __repr__(self):
    return f"SkippedModel({self.model_id}, stage={self.stage}, reason={self.reason})"


def warn_skipped(skipped: list[SkippedModel]):
  for entry in skipped:
    warnings.warn(
      f"Skipping {entry.model_id} ({', '.join(entry.predictors)}) at {entry.stage} stage: {entry.reason}",
      SkippedModelWarning
    )
