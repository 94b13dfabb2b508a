import numpy as np
from sklearn.metrics import mean_squared_error


def calc_mse(prediction: np.ndarray, ground_truth: np.ndarray):
	"""
	Calculate the Mean Squared Error (MSE) between predictions and ground truth.

	:param prediction: Array of predicted values.
	:type prediction: numpy.ndarray
	:param ground_truth: Array of true values.
	:type ground_truth: numpy.ndarray
	:returns: The MSE value.
	:rtype: float
	"""
	prediction = np.asarray(prediction, dtype=np.float64)
	ground_truth = np.asarray(ground_truth, dtype=np.float64)
	if len(prediction) != len(ground_truth):
		raise ValueError("predictions and ground_truth must have the same length")
	if len(prediction) == 0:
		return float('nan')
	return float(mean_squared_error(ground_truth, prediction))


def calc_rmse(prediction: np.ndarray, ground_truth: np.ndarray):
	"""
	Calculate the Root Mean Squared Error, sqrt(mean((observed - predicted)^2)).

	:param prediction: Array of predicted values.
	:type prediction: numpy.ndarray
	:param ground_truth: Array of observed values.
	:type ground_truth: numpy.ndarray
	:returns: The RMSE value, NaN for empty input.
	:rtype: float
	"""
	return float(np.sqrt(calc_mse(prediction, ground_truth)))


def calc_mse_r2_adj_r2(predictions: np.ndarray, ground_truth: np.ndarray, num_vars: int):
	predictions = np.asarray(predictions, dtype=np.float64)
	ground_truth = np.asarray(ground_truth, dtype=np.float64)

	mse = np.mean((ground_truth - predictions) ** 2)
	ss_res = np.sum((ground_truth - predictions) ** 2)
	ss_tot = np.sum((ground_truth - np.mean(ground_truth)) ** 2)

	r2 = 1 - (ss_res / ss_tot) if ss_tot != 0 else float('nan')

	n = len(predictions)
	divisor = n - num_vars - 1
	if divisor <= 0 or np.isnan(r2):
		adj_r2 = float('nan')
	else:
		adj_r2 = 1 - ((1 - r2) * (n - 1) / divisor)
	return mse, r2, adj_r2


def calc_rss(prediction: np.ndarray, ground_truth: np.ndarray):
	residuals = np.asarray(ground_truth, dtype=np.float64) - np.asarray(prediction, dtype=np.float64)
	return float(np.sum(residuals ** 2))
