import numpy as np
import pytest

from gprbmakit.data import load_dataset, validate_dataset, preprocess_dataset, get_coords, get_gdf
from gprbmakit.synthetic import generate_synthetic_tracts
from gprbmakit.utilities.settings import load_settings


def test_preprocess():
	print("")
	settings = load_settings(None)
	data = generate_synthetic_tracts(50, seed=3)
	df_raw = data.df.copy()

	df = preprocess_dataset(data.df, settings)

	# input is untouched
	assert data.df.equals(df_raw)

	assert np.allclose(df["log_CMEDV"], np.log(df_raw["CMEDV"]))
	assert np.allclose(df["longitude"], df_raw["LON"])
	assert np.allclose(df["latitude"], df_raw["LAT"])
	for field in ["RM", "LSTAT", "LON"]:
		assert abs(df[field].mean()) < 1e-9
		assert abs(df[field].std(ddof=0) - 1.0) < 1e-9

	coords = get_coords(df)
	assert len(coords) == 50
	assert coords[0] == (df_raw["LON"].iloc[0], df_raw["LAT"].iloc[0])

	gdf = get_gdf(df)
	assert gdf.crs.to_epsg() == 4326
	assert len(gdf) == 50


def test_missing_fields():
	settings = load_settings(None)
	data = generate_synthetic_tracts(20)

	df = data.df.drop(columns=["ZN"])
	with pytest.warns(UserWarning):
		missing = validate_dataset(df, settings)
	assert missing == ["ZN"]

	with pytest.raises(ValueError):
		validate_dataset(data.df.drop(columns=["LAT"]), settings)
	with pytest.raises(ValueError):
		validate_dataset(data.df.drop(columns=["CMEDV"]), settings)


def test_drop_missing_rows():
	settings = load_settings(None)
	df = generate_synthetic_tracts(20).df
	df.loc[3, "RM"] = np.nan
	with pytest.warns(UserWarning):
		df_out = preprocess_dataset(df, settings)
	assert len(df_out) == 19


def test_non_positive_response():
	settings = load_settings(None)
	df = generate_synthetic_tracts(20).df
	df.loc[0, "CMEDV"] = 0.0
	with pytest.raises(ValueError):
		preprocess_dataset(df, settings)


def test_load_dataset(tmp_path):
	settings = load_settings(None)
	df = generate_synthetic_tracts(10).df
	df.to_csv(tmp_path / "boston.csv", index=False)
	df.to_parquet(tmp_path / "boston.parquet")

	assert len(load_dataset(settings, str(tmp_path / "boston.csv"))) == 10
	assert len(load_dataset(settings, str(tmp_path / "boston.parquet"))) == 10
	with pytest.raises(FileNotFoundError):
		load_dataset(settings, str(tmp_path / "nope.csv"))
