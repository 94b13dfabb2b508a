import pandas as pd

from gprbmakit.bma import run_bma
from gprbmakit.checkpoint import from_checkpoint, exists_checkpoint, read_checkpoint, write_checkpoint, \
	delete_checkpoints
from gprbmakit.data import preprocess_dataset
from gprbmakit.enumeration import enumerate_predictor_sets
from gprbmakit.modeling import fit_and_score_models
from gprbmakit.synthetic import generate_synthetic_tracts
from gprbmakit.utilities.assertions import arrays_are_close, dfs_are_equal
from gprbmakit.utilities.settings import load_settings, get_dep_var


def test_dataframe_checkpoint(tmp_path, monkeypatch):
	print("")
	monkeypatch.chdir(tmp_path)
	df = pd.DataFrame({"key": ["a", "b"], "value": [1.5, 2.5]})

	calls = []

	def make():
		calls.append(1)
		return df

	a = from_checkpoint("frame", make, {})
	b = from_checkpoint("frame", make, {})
	assert len(calls) == 1
	assert exists_checkpoint("frame")
	assert dfs_are_equal(a, b, "key")

	delete_checkpoints("fra")
	assert not exists_checkpoint("frame")


def test_scored_models_round_trip(tmp_path, monkeypatch):
	monkeypatch.chdir(tmp_path)
	settings = load_settings(None, {
		"data": {"candidate_vars": ["RM", "LSTAT"]},
		"modeling": {"bma": {"n_jobs": 1}}
	})
	df = preprocess_dataset(generate_synthetic_tracts(30, seed=11).df, settings)
	dep_var = get_dep_var(settings)

	scored, _ = fit_and_score_models(df, enumerate_predictor_sets(["RM", "LSTAT"]), dep_var, settings)
	write_checkpoint(scored, "scored")
	restored = read_checkpoint("scored")

	original = run_bma(scored, df, dep_var, settings)
	again = run_bma(restored, df, dep_var, settings)

	assert [s.id for s in restored] == [s.id for s in scored]
	for criterion in ["bic", "map", "spbic"]:
		assert arrays_are_close(original.weights[criterion], again.weights[criterion])
		assert arrays_are_close(original.predictions[criterion].to_numpy(), again.predictions[criterion].to_numpy())
	assert original.best_criterion == again.best_criterion
