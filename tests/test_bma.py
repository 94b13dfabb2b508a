import numpy as np
import pandas as pd
import pytest

from gprbmakit.bma import calc_weights, calc_weighted_prediction, calc_inclusion_probabilities, \
	select_best_criterion, renormalize_weights, run_bma
from gprbmakit.enumeration import PredictorSet
from gprbmakit.errors import NoValidModelsError, PredictionFailureError, SkippedModelWarning
from gprbmakit.scoring import ScoredModel, ScoreTriple
from gprbmakit.utilities.assertions import arrays_are_close
from gprbmakit.utilities.settings import load_settings


class FixedModel:

	def __init__(self, predictor_set: PredictorSet, y_pred):
		self.predictor_set = predictor_set
		self.y_pred = np.asarray(y_pred, dtype=np.float64)
		self.param_count = predictor_set.size + 3

	@property
	def id(self):
		return self.predictor_set.id

	def predict(self, df):
		missing = self.predictor_set.missing_fields(df.columns)
		if len(missing) > 0:
			raise PredictionFailureError(f"missing {missing}")
		return self.y_pred


def _scored(size: int, index: int, fields: tuple, y_pred, bic: float, _map: float, spbic: float):
	fitted = FixedModel(PredictorSet(size, index, fields), y_pred)
	return ScoredModel(fitted, 0.0, 1.0, len(y_pred), ScoreTriple(bic, _map, spbic))


def test_weights_sum_to_one():
	print("")
	for direction in ["lower", "higher"]:
		w = calc_weights([-310.2, -305.7, -330.1, -299.0], direction)
		assert abs(w.sum() - 1.0) < 1e-12
		assert np.all(w >= 0)


def test_weights_shift_invariance():
	a = calc_weights([-10, -12, -15], "lower")
	b = calc_weights([0, -2, -5], "lower")
	assert arrays_are_close(a, b, 1e-12)

	a = calc_weights([-10, -12, -15], "higher")
	b = calc_weights([0, -2, -5], "higher")
	assert arrays_are_close(a, b, 1e-12)


def test_weights_single_model():
	assert arrays_are_close(calc_weights([123.4], "lower"), [1.0])
	assert arrays_are_close(calc_weights([-0.5], "higher"), [1.0])


def test_weights_direction():
	# lower is better: the smallest score gets the most weight
	w = calc_weights([0.0, 2.0], "lower")
	assert w[0] > w[1]
	assert abs(w[0] / w[1] - np.exp(1.0)) < 1e-9

	# higher is better (MAP): the largest score gets the most weight
	w = calc_weights([0.0, 2.0], "higher")
	assert w[1] > w[0]
	assert abs(w[1] / w[0] - np.exp(2.0)) < 1e-9


def test_weights_no_overflow():
	w = calc_weights([-1e6, -1e6 + 1.0], "higher")
	assert np.all(np.isfinite(w))
	assert abs(w.sum() - 1.0) < 1e-12


def test_weights_errors():
	with pytest.raises(ValueError):
		calc_weights([], "lower")
	with pytest.raises(ValueError):
		calc_weights([1.0, np.nan], "lower")
	with pytest.raises(ValueError):
		calc_weights([1.0], "sideways")


def test_weighted_prediction():
	predictions = np.array([
		[1.0, 2.0, 3.0],
		[3.0, 2.0, 1.0]
	])
	result = calc_weighted_prediction(predictions, np.array([0.25, 0.75]))
	assert arrays_are_close(result, [2.5, 2.0, 1.5])

	# a single model returns its own predictions
	result = calc_weighted_prediction(predictions[:1], np.array([1.0]))
	assert arrays_are_close(result, predictions[0])

	# zero-weight rows are ignored, even when they hold NaN
	predictions = np.array([
		[1.0, 2.0, 3.0],
		[np.nan, np.nan, np.nan]
	])
	result = calc_weighted_prediction(predictions, np.array([1.0, 0.0]))
	assert arrays_are_close(result, [1.0, 2.0, 3.0])


def test_renormalize():
	w = renormalize_weights([10.0, 12.0, 14.0], np.array([True, False, True]), "lower")
	expected = calc_weights([10.0, 14.0], "lower")
	assert arrays_are_close(w, [expected[0], 0.0, expected[1]])
	assert abs(w.sum() - 1.0) < 1e-12

	with pytest.raises(NoValidModelsError):
		renormalize_weights([0.5, 0.5], np.array([False, False]))


def test_renormalize_after_best_model_drops():
	# the survivor's weight relative to the dropped model underflows to 0
	assert calc_weights([0.0, 3000.0], "lower")[1] == 0.0
	assert calc_weights([0.0, -1000.0], "higher")[1] == 0.0

	valid = np.array([False, True])
	assert arrays_are_close(renormalize_weights([0.0, 3000.0], valid, "lower"), [0.0, 1.0])
	assert arrays_are_close(renormalize_weights([0.0, -1000.0], valid, "higher"), [0.0, 1.0])


def test_inclusion_probabilities():
	scored = [
		_scored(1, 1, ("A",), [1.0], 0, 0, 0),
		_scored(1, 2, ("B",), [1.0], 0, 0, 0),
		_scored(2, 1, ("A", "B"), [1.0], 0, 0, 0)
	]
	probs = calc_inclusion_probabilities(scored, np.array([0.5, 0.2, 0.3]))
	assert abs(probs["A"] - 0.8) < 1e-12
	assert abs(probs["B"] - 0.5) < 1e-12

	probs = calc_inclusion_probabilities(scored, np.array([0.5, 0.2, 0.3]), ["A", "B", "C"])
	assert probs["C"] == 0.0


def test_select_best_criterion():
	assert select_best_criterion({"bic": 5.0, "map": 3.0, "spbic": 4.0}) == "map"
	assert select_best_criterion({"bic": 0.2, "map": 0.1, "spbic": 0.1}) == "map"
	assert select_best_criterion({"bic": 0.1, "map": 0.1, "spbic": 0.1}) == "bic"
	assert select_best_criterion({"bic": 0.1, "map": 0.1, "spbic": 0.1}, ["spbic", "map", "bic"]) == "spbic"
	assert select_best_criterion({"bic": 0.1000001, "map": 0.1, "spbic": 0.3}, tolerance=1e-3) == "bic"
	assert select_best_criterion({"bic": np.nan, "map": 0.2, "spbic": 0.3}) == "map"


def test_run_bma():
	df = pd.DataFrame({
		"A": [0.0, 1.0, 2.0],
		"B": [1.0, 0.0, 1.0],
		"y": [1.0, 2.0, 3.0]
	})
	scored = [
		_scored(1, 1, ("A",), [1.0, 2.0, 3.0], 10.0, -5.0, 10.0),
		_scored(1, 2, ("B",), [2.0, 2.0, 2.0], 12.0, -8.0, 12.0)
	]
	settings = load_settings(None)

	results = run_bma(scored, df, "y", settings)

	for criterion in ["bic", "map", "spbic"]:
		assert abs(results.weights[criterion].sum() - 1.0) < 1e-12
		assert results.weights[criterion][0] > results.weights[criterion][1]

	w = results.weights["bic"]
	expected = w[0] * np.array([1.0, 2.0, 3.0]) + w[1] * np.array([2.0, 2.0, 2.0])
	assert arrays_are_close(results.predictions["bic"].to_numpy(), expected)
	assert arrays_are_close(results.predictions["observed"].to_numpy(), [1.0, 2.0, 3.0])

	# MAP gives the first model more weight than BIC does
	assert results.best_criterion == "map"
	assert results.rmse["map"] < results.rmse["bic"]

	top = results.top_models("bic", 1)
	assert list(top["model_id"]) == ["model_1_1"]
	assert list(results.weights_df().columns[-3:]) == ["w_bic", "w_map", "w_spbic"]


def test_run_bma_prediction_failure():
	df = pd.DataFrame({"A": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0]})
	scored = [
		_scored(1, 1, ("A",), [1.1, 2.0, 2.9], 10.0, -5.0, 10.0),
		_scored(1, 2, ("Z",), [2.0, 2.0, 2.0], 8.0, -4.0, 8.0),
		_scored(2, 1, ("A", "Z"), [2.0, 2.0, 2.0], 9.0, -4.5, 9.0)
	]
	settings = load_settings(None)

	with pytest.warns(SkippedModelWarning):
		results = run_bma(scored, df, "y", settings)

	assert [f.model_id for f in results.failures] == ["model_1_2", "model_2_1"]
	for criterion in ["bic", "map", "spbic"]:
		assert arrays_are_close(results.weights[criterion], [1.0, 0.0, 0.0])
		assert arrays_are_close(results.predictions[criterion].to_numpy(), [1.1, 2.0, 2.9])
	assert arrays_are_close(results.inclusion.loc["A"].to_numpy(), [1.0, 1.0, 1.0])
	assert arrays_are_close(results.inclusion.loc["Z"].to_numpy(), [0.0, 0.0, 0.0])


def test_run_bma_nothing_to_average():
	settings = load_settings(None)
	df = pd.DataFrame({"A": [0.0], "y": [1.0]})
	with pytest.raises(NoValidModelsError):
		run_bma([], df, "y", settings)

	only_failures = [_scored(1, 1, ("Z",), [1.0], 0.0, 0.0, 0.0)]
	with pytest.warns(SkippedModelWarning):
		with pytest.raises(NoValidModelsError):
			run_bma(only_failures, df, "y", settings)


def test_run_bma_best_model_fails_to_predict():
	df = pd.DataFrame({"A": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0]})
	scored = [
		_scored(1, 1, ("Z",), [1.0, 2.0, 3.0], 0.0, 0.0, 0.0),
		_scored(1, 2, ("A",), [1.1, 2.0, 2.9], 3000.0, -1000.0, 3000.0)
	]
	settings = load_settings(None)

	with pytest.warns(SkippedModelWarning):
		results = run_bma(scored, df, "y", settings)

	assert [f.model_id for f in results.failures] == ["model_1_1"]
	for criterion in ["bic", "map", "spbic"]:
		assert arrays_are_close(results.weights[criterion], [0.0, 1.0])
		assert arrays_are_close(results.predictions[criterion].to_numpy(), [1.1, 2.0, 2.9])
