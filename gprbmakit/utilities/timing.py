import time

import pandas as pd


class TimingData:
	_data = {}
	results = {}

	def __init__(self):
		self._data = {}
		self.results = {}

	def start(self, key):
		# restarting a stopped key keeps accumulating on top of its previous result
		if key in self.results:
			self._data[key] = time.time() - self.results[key]
		else:
			self._data[key] = time.time()

	def stop(self, key):
		if key in self._data:
			result = time.time() - self._data[key]
			self.results[key] = result
			return result
		else:
			return -1

	def get(self, key):
		return self.results.get(key)

	def merge(self, other: "TimingData", prefix: str = ""):
		for key, value in other.results.items():
			self.results[f"{prefix}{key}"] = value

	def to_df(self) -> pd.DataFrame:
		return pd.DataFrame({
			"stage": list(self.results.keys()),
			"seconds": list(self.results.values())
		})
