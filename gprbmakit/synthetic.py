import numpy as np
import pandas as pd


class SyntheticTracts:
	df: pd.DataFrame
	true_vars: list[str]

	def __init__(self, df: pd.DataFrame, true_vars: list[str]):
		self.df = df
		self.true_vars = true_vars


def generate_synthetic_tracts(n: int = 100, seed: int = 1337, noise: float = 0.08) -> SyntheticTracts:
	"""
	Generates a Boston-like table of census tracts.

	Median values depend on RM, LSTAT, CRIM and a smooth spatial surface; the other predictors are noise, so the
	model-averaging weights have something real to find.
	"""
	rng = np.random.default_rng(seed)

	lon = rng.uniform(-71.20, -70.90, n)
	lat = rng.uniform(42.20, 42.45, n)

	# distance from a downtown anchor drives several of the predictors
	d = np.sqrt(((lon + 71.06) / 0.3) ** 2 + ((lat - 42.36) / 0.25) ** 2)

	rm = rng.normal(6.3, 0.7, n)
	lstat = np.clip(rng.normal(12.0, 6.0, n) + 4.0 * (1.0 - d), 1.5, 38.0)
	crim = np.exp(rng.normal(-0.5, 1.2, n) + 1.5 * (1.0 - d))

	df = pd.DataFrame({
		"TRACT": np.arange(1, n + 1).astype(str),
		"LON": lon,
		"LAT": lat,
		"CRIM": crim,
		"ZN": np.clip(rng.normal(10.0, 20.0, n), 0.0, 100.0),
		"INDUS": np.clip(rng.normal(11.0, 6.0, n), 0.5, 28.0),
		"CHAS": (rng.uniform(0, 1, n) < 0.07).astype(int),
		"NOX": np.clip(rng.normal(0.55, 0.1, n) + 0.05 * (1.0 - d), 0.38, 0.87),
		"RM": rm,
		"AGE": np.clip(rng.normal(68.0, 28.0, n), 3.0, 100.0),
		"DIS": 1.0 + 8.0 * d + rng.normal(0, 0.5, n),
		"RAD": rng.integers(1, 25, n),
		"TAX": rng.uniform(190.0, 710.0, n),
		"PTRATIO": rng.normal(18.5, 2.1, n),
		"B": np.clip(rng.normal(356.0, 90.0, n), 0.3, 397.0),
		"LSTAT": lstat
	})

	spatial = 0.25 * np.sin(3.0 * d) + 0.1 * np.cos(20.0 * (lat - 42.2))
	log_value = (
		3.0
		+ 0.25 * (rm - 6.3)
		- 0.03 * (lstat - 12.0)
		- 0.05 * np.log(crim)
		+ spatial
		+ rng.normal(0, noise, n)
	)
	df["CMEDV"] = np.round(np.exp(log_value), 2)

	return SyntheticTracts(df, ["RM", "LSTAT", "CRIM"])
