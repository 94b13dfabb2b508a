import os

import numpy as np
import pandas as pd

from gprbmakit.bma import BMAResults
from gprbmakit.data import get_gdf
from gprbmakit.errors import SkippedModel
from gprbmakit.modeling import SingleModelResults
from gprbmakit.scoring import CRITERIA
from gprbmakit.utilities.format import fancy_format, dig4_fancy_format, format_predictors
from gprbmakit.utilities.plotting import plot_value_surface, plot_histogram_df
from gprbmakit.utilities.settings import get_key_field
from gprbmakit.utilities.stats import calc_rmse, calc_mse_r2_adj_r2
from gprbmakit.utilities.timing import TimingData


# Public:

class EvaluationResult:
	"""
	Terminal comparison of GPR, GPR-BMA and GWR.

	Attributes:
		rmse (dict[str, float]): RMSE per method: "gpr", "gpr_bma_bic", "gpr_bma_map", "gpr_bma_spbic", "gwr"
		best_criterion (str): The BMA criterion with the lowest RMSE
		best_method (str): The method with the lowest RMSE among "gpr", "gpr_bma" and "gwr"
		predictions (pandas.DataFrame): Per-observation observed values and predictions of every method
		df_ranking (pandas.DataFrame): One row per compared method, sorted by RMSE
	"""
	rmse: dict[str, float]
	best_criterion: str
	best_method: str
	predictions: pd.DataFrame
	df_ranking: pd.DataFrame

	def __init__(self, rmse: dict[str, float], best_criterion: str, best_method: str, predictions: pd.DataFrame, df_ranking: pd.DataFrame):
		self.rmse = rmse
		self.best_criterion = best_criterion
		self.best_method = best_method
		self.predictions = predictions
		self.df_ranking = df_ranking

	@property
	def best_predictions(self) -> np.ndarray:
		return self.predictions[self.best_criterion].to_numpy()

	def print(self) -> str:
		result = "Ranking:\n"
		result += _format_benchmark_df(self.df_ranking.copy(), transpose=False)
		result += "\n\n"
		result += f"Best GPR-BMA criterion: {self.best_criterion.upper()}\n"
		result += f"Best method: {self.best_method}\n"
		return result


class RunSummary:
	"""
	What happened during a run: how many models made it through each stage, which subsets were skipped and why.
	"""

	def __init__(self, n_enumerated: int, n_scored: int, n_weighted: int, skipped: list[SkippedModel], timing: TimingData):
		self.n_enumerated = n_enumerated
		self.n_scored = n_scored
		self.n_weighted = n_weighted
		self.skipped = list(skipped)
		self.timing = timing

	def df_skipped(self) -> pd.DataFrame:
		return pd.DataFrame({
			"model_id": [s.model_id for s in self.skipped],
			"predictors": [",".join(s.predictors) for s in self.skipped],
			"stage": [s.stage for s in self.skipped],
			"reason": [s.reason for s in self.skipped]
		})

	def print(self) -> str:
		result = "Run summary:\n"
		result += f"-->Predictor sets enumerated : {self.n_enumerated:,}\n"
		result += f"-->Models fitted and scored  : {self.n_scored:,}\n"
		result += f"-->Models weighted           : {self.n_weighted:,}\n"
		result += f"-->Subsets skipped           : {len(self.skipped):,}\n"
		for stage in ["fit", "score", "predict"]:
			count = len([s for s in self.skipped if s.stage == stage])
			if count > 0:
				result += f"---->at {stage:7s} stage: {count:,}\n"
		if len(self.skipped) > 0:
			result += "\nSkipped subsets:\n"
			result += self.df_skipped().to_markdown(index=False)
			result += "\n"
		if len(self.timing.results) > 0:
			result += "\nTimings:\n"
			df_time = self.timing.to_df()
			df_time["seconds"] = df_time["seconds"].apply(fancy_format)
			result += df_time.to_markdown(index=False)
			result += "\n"
		return result


def evaluate_models(
		df: pd.DataFrame,
		bma: BMAResults,
		baselines: dict[str, SingleModelResults],
		settings: dict,
		verbose: bool = False
) -> EvaluationResult:
	"""
	Tabulate RMSE for each BMA criterion and each baseline, and rank the methods.

	:param df: The observations the models were fit on.
	:type df: pandas.DataFrame
	:param bma: Results of the weighting & averaging step.
	:type bma: BMAResults
	:param baselines: Baseline results keyed by method name ("gpr", "gwr"); may be empty.
	:type baselines: dict[str, SingleModelResults]
	:param settings: Settings dictionary.
	:type settings: dict
	:param verbose: Whether to print verbose output.
	:type verbose: bool, optional
	:returns: The evaluation result.
	:rtype: EvaluationResult
	"""
	log_response = settings.get("data", {}).get("log_response", True)
	key_field = get_key_field(settings)

	df_pred = bma.predictions.copy()
	if key_field in df:
		df_pred.insert(0, key_field, df[key_field].to_numpy())
	for field in ["longitude", "latitude"]:
		if field in df:
			df_pred[field] = df[field].to_numpy()
	for name, results in baselines.items():
		df_pred[name] = results.y_pred

	observed = df_pred["observed"].to_numpy()

	rmse = {}
	for criterion in CRITERIA:
		rmse[f"gpr_bma_{criterion}"] = bma.rmse[criterion]
	for name, results in baselines.items():
		rmse[name] = calc_rmse(results.y_pred, observed)

	compared = {"gpr_bma": df_pred[bma.best_criterion].to_numpy()}
	for name, results in baselines.items():
		compared[name] = results.y_pred

	df_ranking = _calc_ranking(observed, compared, log_response)
	best_method = df_ranking["method"].iloc[0]

	if verbose:
		print(_format_benchmark_df(df_ranking.copy(), transpose=False))

	return EvaluationResult(rmse, bma.best_criterion, best_method, df_pred, df_ranking)


def format_top_models(bma: BMAResults, criterion: str, n: int = 10) -> str:
	df = bma.top_models(criterion, n)
	lines = [f"Top {len(df)} models by {criterion.upper()} weight"]
	for i, row in df.iterrows():
		lines.append(f"{i + 1}. {row['model_id']}: {format_predictors(row['predictors'].split(','))}")
	return "\n".join(lines) + "\n"


def write_out_all_results(
		outpath: str,
		evaluation: EvaluationResult,
		bma: BMAResults,
		summary: RunSummary,
		top_n: int = 10
):
	"""
	Write the tabular exports and plain-text reports of a run under `outpath`.

	:param outpath: Output directory.
	:type outpath: str
	:param evaluation: Evaluation result.
	:type evaluation: EvaluationResult
	:param bma: BMA results.
	:type bma: BMAResults
	:param summary: Run summary.
	:type summary: RunSummary
	:param top_n: Number of models per criterion to list.
	:type top_n: int, optional
	"""
	os.makedirs(outpath, exist_ok=True)

	bma.weights_df().to_csv(f"{outpath}/scores.csv", index=False)
	evaluation.predictions.to_csv(f"{outpath}/predictions.csv", index=False)
	bma.inclusion.to_csv(f"{outpath}/inclusion.csv")

	df_rmse = pd.DataFrame({
		"method": list(evaluation.rmse.keys()),
		"rmse": list(evaluation.rmse.values())
	})
	df_rmse.to_csv(f"{outpath}/rmse.csv", index=False)

	for criterion in CRITERIA:
		with open(f"{outpath}/top_models_{criterion}.txt", "w") as f:
			f.write(format_top_models(bma, criterion, top_n))

	with open(f"{outpath}/summary.md", "w") as f:
		f.write(evaluation.print())
		f.write("\n")
		f.write(summary.print())


def write_maps(outpath: str, df: pd.DataFrame, evaluation: EvaluationResult):
	"""
	Render observed values, every method's predictions and their residuals over the observation points.
	"""
	gdf = get_gdf(df)
	df_pred = evaluation.predictions
	observed = df_pred["observed"].to_numpy()

	plot_value_surface("Observed", observed, gdf, label="Observed", out_file=f"{outpath}/maps/observed.png")

	methods = [c for c in list(CRITERIA) + ["gpr", "gwr"] if c in df_pred]
	for method in methods:
		title = f"GPR-BMA ({method.upper()})" if method in CRITERIA else method.upper()
		y_pred = df_pred[method].to_numpy()
		plot_value_surface(f"{title} prediction", y_pred, gdf, label="Prediction", out_file=f"{outpath}/maps/{method}.png")
		plot_value_surface(f"{title} residual", observed - y_pred, gdf, norm="two_slope", label="Observed - predicted", out_file=f"{outpath}/maps/{method}_residual.png")

	df_resid = pd.DataFrame({method: observed - df_pred[method].to_numpy() for method in methods})
	plot_histogram_df(df_resid, methods, xlabel="Observed - predicted", ylabel="Count", title="Residuals", out_file=f"{outpath}/maps/residuals.png")


# Private functions:

def _calc_ranking(observed: np.ndarray, compared: dict[str, np.ndarray], log_response: bool) -> pd.DataFrame:
	data = {
		"method": [],
		"rmse": [],
		"r2": []
	}
	if log_response:
		data["rmse_price"] = []

	for name, y_pred in compared.items():
		y_pred = np.asarray(y_pred, dtype=np.float64)
		_, r2, _ = calc_mse_r2_adj_r2(y_pred, observed, 0)
		data["method"].append(name)
		data["rmse"].append(calc_rmse(y_pred, observed))
		data["r2"].append(r2)
		if log_response:
			data["rmse_price"].append(calc_rmse(np.exp(y_pred), np.exp(observed)))

	df = pd.DataFrame(data)
	# stable sort keeps insertion order (gpr_bma first) for equal RMSE
	df = df.sort_values(by="rmse", kind="mergesort").reset_index(drop=True)
	df.insert(0, "rank", np.arange(1, len(df) + 1))
	return df


def _format_benchmark_df(df: pd.DataFrame, transpose: bool = True):
	formats = {
		"rmse": dig4_fancy_format,
		"r2": dig4_fancy_format,
		"rmse_price": fancy_format,
		"bic": fancy_format,
		"map": fancy_format,
		"spbic": fancy_format
	}

	for col in df.columns:
		if col in formats:
			df[col] = df[col].apply(formats[col])
	if transpose:
		df = df.transpose()
	return df.to_markdown(index=transpose)
