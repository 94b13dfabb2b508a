import numpy as np
import pandas as pd
import pytest

from gprbmakit.errors import NumericDegeneracyError, PredictionFailureError
from gprbmakit.scoring import calc_log_likelihood, calc_bic, calc_map, calc_spbic, score_model, score_models, \
	ScoringPolicy, ScoreTriple, get_scoring_policy, scores_to_df, CRITERIA
from gprbmakit.utilities.settings import load_settings
from gprbmakit.enumeration import PredictorSet


class FixedModel:
	"""Stands in for a fitted model with known predictions."""

	def __init__(self, predictor_set: PredictorSet, y_pred, param_count: int):
		self.predictor_set = predictor_set
		self.y_pred = np.asarray(y_pred, dtype=np.float64)
		self.param_count = param_count

	@property
	def id(self):
		return self.predictor_set.id

	def predict(self, df):
		missing = self.predictor_set.missing_fields(df.columns)
		if len(missing) > 0:
			raise PredictionFailureError(f"missing {missing}")
		return self.y_pred


def test_log_likelihood():
	print("")
	y = np.array([1.0, 2.0, 3.0, 4.0])
	y_pred = np.array([1.5, 2.0, 2.5, 4.0])
	ll, rss = calc_log_likelihood(y, y_pred)

	assert abs(rss - 0.5) < 1e-12
	expected = -0.5 * (4 * np.log(0.5 / 4) + 4 * np.log(2 * np.pi))
	assert abs(ll - expected) < 1e-12


def test_perfect_fit_is_degenerate():
	y = np.array([1.0, 2.0, 3.0])
	with pytest.raises(NumericDegeneracyError):
		calc_log_likelihood(y, y.copy())
	with pytest.raises(NumericDegeneracyError):
		calc_log_likelihood(np.array([]), np.array([]))


def test_criteria():
	ll = -12.5
	q = 4
	n = 50

	assert abs(calc_bic(ll, q, n) - (ll - 2 * np.log(50))) < 1e-12
	# identity Hessian: log det = 0
	assert abs(calc_map(ll, q, 0.0) - (ll - 2 * np.log(2 * np.pi))) < 1e-12
	# identity complexity: ln g(q) = ln q
	assert abs(calc_spbic(ll, q, n, np.log(q)) - (calc_bic(ll, q, n) + np.log(4))) < 1e-12


def test_score_model():
	ps = PredictorSet(2, 1, ("A", "B"))
	df = pd.DataFrame({"A": [0, 1, 2, 3], "B": [1, 1, 0, 0], "y": [1.0, 2.0, 3.0, 4.0]})
	model = FixedModel(ps, [1.5, 2.0, 2.5, 4.0], 5)

	scored = score_model(model, df, "y")
	ll, _ = calc_log_likelihood(df["y"].to_numpy(), model.y_pred)

	assert scored.id == "model_2_1"
	assert scored.n == 4
	assert abs(scored.log_likelihood - ll) < 1e-12
	assert abs(scored.scores.bic - calc_bic(ll, 5, 4)) < 1e-12
	assert abs(scored.scores.map - calc_map(ll, 5, 0.0)) < 1e-12
	assert abs(scored.scores.spbic - calc_spbic(ll, 5, 4, np.log(5))) < 1e-12


def test_score_models_skips_failures():
	df = pd.DataFrame({"A": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0]})
	good = FixedModel(PredictorSet(1, 1, ("A",)), [1.1, 2.0, 2.9], 4)
	perfect = FixedModel(PredictorSet(1, 2, ("A",)), [1.0, 2.0, 3.0], 4)
	missing = FixedModel(PredictorSet(1, 3, ("Z",)), [1.0, 2.0, 3.0], 4)

	scored, skipped = score_models([good, perfect, missing], df, "y")

	assert [s.id for s in scored] == ["model_1_1"]
	assert [s.model_id for s in skipped] == ["model_1_2", "model_1_3"]
	assert all(s.stage == "score" for s in skipped)


def test_policies():
	df = pd.DataFrame({"A": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0]})
	model = FixedModel(PredictorSet(1, 1, ("A",)), [1.1, 2.0, 2.9], 2)

	base = score_model(model, df, "y")

	doubled = ScoringPolicy(hessian=lambda fitted, q: 2.0 * np.eye(q), complexity=lambda q: q ** 2)
	scored = score_model(model, df, "y", doubled)
	assert abs(scored.scores.map - (base.scores.map - 0.5 * 2 * np.log(2.0))) < 1e-12
	assert abs(scored.scores.spbic - (base.scores.spbic + np.log(2.0))) < 1e-12
	assert scored.scores.bic == base.scores.bic

	singular = ScoringPolicy(hessian=lambda fitted, q: np.zeros((q, q)))
	with pytest.raises(NumericDegeneracyError):
		score_model(model, df, "y", singular)

	non_positive = ScoringPolicy(complexity=lambda q: 0.0)
	with pytest.raises(NumericDegeneracyError):
		score_model(model, df, "y", non_positive)


def test_scoring_policy_from_settings():
	settings = load_settings(None)
	policy = get_scoring_policy(settings)
	assert abs(policy.log_det_hessian(None, 3)) < 1e-12
	assert abs(policy.log_complexity(3) - np.log(3)) < 1e-12

	settings["modeling"]["bma"]["hessian"] = "observed_information"
	with pytest.raises(ValueError):
		get_scoring_policy(settings)


def test_score_triple_and_table():
	t = ScoreTriple(-1.0, -2.0, -3.0)
	assert t.get("map") == -2.0
	assert t == ScoreTriple(-1, -2, -3)
	with pytest.raises(ValueError):
		t.get("aic")

	df = pd.DataFrame({"A": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0]})
	model = FixedModel(PredictorSet(1, 1, ("A",)), [1.1, 2.0, 2.9], 4)
	table = scores_to_df([score_model(model, df, "y")])
	assert list(table["model_id"]) == ["model_1_1"]
	for criterion in CRITERIA:
		assert criterion in table
