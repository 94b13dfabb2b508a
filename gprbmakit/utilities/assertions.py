import numpy as np
import pandas as pd


def objects_are_equal(a, b, epsilon: float = 1e-6):
	if isinstance(a, str) and isinstance(b, str):
		return a == b

	if isinstance(a, dict) and isinstance(b, dict):
		return dicts_are_equal(a, b, epsilon)

	if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
		return lists_are_equal(list(a), list(b), epsilon)

	if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
		return arrays_are_close(a, b, epsilon)

	a_is_num = isinstance(a, (int, float, np.number)) and not isinstance(a, bool)
	b_is_num = isinstance(b, (int, float, np.number)) and not isinstance(b, bool)
	if a_is_num and b_is_num:
		if pd.isna(a) and pd.isna(b):
			return True
		return abs(a - b) < epsilon

	if type(a) != type(b):
		return False
	return a == b


def lists_are_equal(a: list, b: list, epsilon: float = 1e-6):
	if len(a) != len(b):
		print(a)
		print(b)
		return False
	for entry_a, entry_b in zip(a, b):
		if not objects_are_equal(entry_a, entry_b, epsilon):
			print(a)
			print(b)
			return False
	return True


def dicts_are_equal(a: dict, b: dict, epsilon: float = 1e-6):
	if set(a.keys()) != set(b.keys()):
		print(f"Keys differ: {sorted(a.keys())} VS {sorted(b.keys())}")
		return False
	for key in a:
		if not objects_are_equal(a[key], b[key], epsilon):
			print(f"Values differ for key '{key}': {a[key]} VS {b[key]}")
			return False
	return True


def arrays_are_close(a, b, epsilon: float = 1e-9):
	a = np.asarray(a, dtype=np.float64)
	b = np.asarray(b, dtype=np.float64)
	if a.shape != b.shape:
		print(f"Shapes differ: {a.shape} VS {b.shape}")
		return False
	return bool(np.allclose(a, b, rtol=0.0, atol=epsilon, equal_nan=True))


def dfs_are_equal(a: pd.DataFrame, b: pd.DataFrame, primary_key: str = None, epsilon: float = 1e-6):
	if primary_key is not None:
		a = a.sort_values(primary_key)
		b = b.sort_values(primary_key)
	a = a.reset_index(drop=True)
	b = b.reset_index(drop=True)

	if set(a.columns) != set(b.columns):
		print(f"Columns differ: {list(a.columns)} VS {list(b.columns)}")
		return False
	if len(a) != len(b):
		print(f"Row counts differ: {len(a)} VS {len(b)}")
		return False

	for col in a.columns:
		if pd.api.types.is_numeric_dtype(a[col]) and pd.api.types.is_numeric_dtype(b[col]):
			if not arrays_are_close(a[col].to_numpy(), b[col].to_numpy(), epsilon):
				print(f"Column '{col}' differs")
				return False
		elif not a[col].astype(str).equals(b[col].astype(str)):
			print(f"Column '{col}' differs")
			return False
	return True
