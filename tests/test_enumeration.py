import pickle

import pytest

from gprbmakit.enumeration import enumerate_predictor_sets, count_predictor_sets, PredictorSet


def test_three_candidates():
	print("")
	sets = enumerate_predictor_sets(["A", "B", "C"])

	expected = {
		"model_1_1": ("A",),
		"model_1_2": ("B",),
		"model_1_3": ("C",),
		"model_2_1": ("A", "B"),
		"model_2_2": ("A", "C"),
		"model_2_3": ("B", "C"),
		"model_3_1": ("A", "B", "C")
	}

	assert list(sets.keys()) == list(expected.keys())
	for key, fields in expected.items():
		assert sets[key].fields == fields
		assert sets[key].size == len(fields)


def test_single_candidate():
	sets = enumerate_predictor_sets(["RM"])
	assert list(sets.keys()) == ["model_1_1"]
	assert sets["model_1_1"].fields == ("RM",)


def test_fifteen_candidates():
	candidates = [
		"CRIM", "ZN", "INDUS", "CHAS", "NOX", "RM", "AGE", "DIS",
		"RAD", "TAX", "PTRATIO", "B", "LSTAT", "LON", "LAT"
	]
	sets = enumerate_predictor_sets(candidates)
	assert len(sets) == 2 ** 15 - 1
	assert count_predictor_sets(15) == 32767

	# every subset appears exactly once
	assert len(set(sets.values())) == len(sets)

	# ids are stable across runs
	again = enumerate_predictor_sets(candidates)
	assert list(again.keys()) == list(sets.keys())
	assert sets["model_15_1"].fields == tuple(candidates)


def test_size_range():
	sets = enumerate_predictor_sets(["A", "B", "C", "D"], min_size=2, max_size=3)
	assert len(sets) == count_predictor_sets(4, 2, 3) == 6 + 4
	assert min(ps.size for ps in sets.values()) == 2
	assert max(ps.size for ps in sets.values()) == 3


def test_invalid_candidates():
	with pytest.raises(ValueError):
		enumerate_predictor_sets([])
	with pytest.raises(ValueError):
		enumerate_predictor_sets(["A", "B", "A"])
	with pytest.raises(ValueError):
		enumerate_predictor_sets(["A", "B"], min_size=0)
	with pytest.raises(ValueError):
		enumerate_predictor_sets(["A", "B"], min_size=2, max_size=3)
	with pytest.raises(ValueError):
		enumerate_predictor_sets(["A", "B", "C"], min_size=3, max_size=2)


def test_predictor_set():
	a = PredictorSet(2, 1, ("RM", "LSTAT"))
	b = PredictorSet(2, 7, ("LSTAT", "RM"))
	assert a == b
	assert hash(a) == hash(b)
	assert "RM" in a
	assert "CRIM" not in a
	assert len(a) == 2
	assert a.missing_fields(["RM", "CRIM"]) == ["LSTAT"]

	with pytest.raises(ValueError):
		PredictorSet(0, 1, ())
	with pytest.raises(ValueError):
		PredictorSet(2, 1, ("RM", "RM"))
	with pytest.raises(ValueError):
		PredictorSet(3, 1, ("RM", "LSTAT"))

	c = pickle.loads(pickle.dumps(a))
	assert c.id == a.id
	assert c.fields == a.fields
