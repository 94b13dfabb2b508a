"""
Pipeline
---------
This module contains every public function a user calls to run a GPR-BMA study end to end.

Rules:
- Every public function here delegates to the module that owns the stage.
- This module imports from other modules, but no other modules import from it.
- Each stage consumes the previous stage's output and returns a new object; nothing is mutated in place.
"""

import json
import warnings

import pandas as pd

import gprbmakit.utilities.settings
import gprbmakit.checkpoint
from gprbmakit.benchmark import EvaluationResult, RunSummary, evaluate_models, write_out_all_results, write_maps
from gprbmakit.bma import BMAResults, run_bma
from gprbmakit.data import load_dataset, preprocess_dataset
from gprbmakit.enumeration import PredictorSet, enumerate_predictor_sets
from gprbmakit.errors import NoValidModelsError, SkippedModel
from gprbmakit.modeling import SingleModelResults, fit_and_score_models, run_gpr, run_gwr
from gprbmakit.scoring import ScoredModel, get_scoring_policy
from gprbmakit.utilities.settings import get_candidate_vars, get_bma_settings, get_dep_var, get_output_path
from gprbmakit.utilities.timing import TimingData


class GPRBMARun:
   """
   Everything produced by one call to :func:`run_gpr_bma`.

   Attributes:
       predictor_sets (dict[str, PredictorSet]): Every enumerated predictor set, in id order
       scored_models (list[ScoredModel]): Models that were fitted and scored
       skipped (list[SkippedModel]): Subsets dropped during fitting, scoring or prediction
       bma (BMAResults): Weights, averaged predictions, RMSEs and inclusion probabilities
       timing (TimingData): Stage durations
   """

   def __init__(
       self,
       predictor_sets: dict[str, PredictorSet],
       scored_models: list[ScoredModel],
       skipped: list[SkippedModel],
       bma: BMAResults,
       timing: TimingData
   ):
      self.predictor_sets = predictor_sets
      self.scored_models = scored_models
      self.skipped = skipped
      self.bma = bma
      self.timing = timing


class StudyResults:
   """
   Final output of :func:`run_all`.

   Attributes:
       run (GPRBMARun): The model-averaging run
       baselines (dict[str, SingleModelResults]): Plain GPR and GWR results
       evaluation (EvaluationResult): RMSE tables and ranking
       summary (RunSummary): Counts, skipped subsets and timings
   """

   def __init__(self, run: GPRBMARun, baselines: dict[str, SingleModelResults], evaluation: EvaluationResult, summary: RunSummary):
      self.run = run
      self.baselines = baselines
      self.evaluation = evaluation
      self.summary = summary


# Basic data stuff

def load_settings(settings_file: str | None = "in/settings.json", settings_object: dict = None):
   """
   Load and return the settings dictionary.

   The user's settings are merged over the default template, comments are stripped and variables are resolved.

   :param settings_file: Path to the settings file. Pass None to use the defaults only.
   :type settings_file: str, optional
   :param settings_object: Optional settings object to use instead of loading from a file.
   :type settings_object: dict, optional
   :returns: The settings dictionary.
   :rtype: dict
   """
   return gprbmakit.utilities.settings.load_settings(settings_file, settings_object)


def load_data(settings: dict, df: pd.DataFrame = None, verbose: bool = False) -> pd.DataFrame:
   """
   Load, validate and preprocess the observations.

   :param settings: Settings dictionary.
   :type settings: dict
   :param df: Raw observations to use instead of reading `data.filename`.
   :type df: pandas.DataFrame, optional
   :param verbose: If True, prints progress.
   :type verbose: bool, optional
   :returns: The prepared observations, carrying the dependent variable column.
   :rtype: pandas.DataFrame
   """
   if df is None:
      df = load_dataset(settings, verbose=verbose)
   return preprocess_dataset(df, settings, verbose=verbose)


def enumerate_models(settings: dict, verbose: bool = False) -> dict[str, PredictorSet]:
   """
   Enumerate every predictor set over `data.candidate_vars`, bounded by `modeling.bma.min_subset_size` and
   `modeling.bma.max_subset_size`.

   :param settings: Settings dictionary.
   :type settings: dict
   :param verbose: If True, prints progress.
   :type verbose: bool, optional
   :returns: Ordered mapping of predictor set id to PredictorSet.
   :rtype: dict[str, PredictorSet]
   """
   s = get_bma_settings(settings)
   return enumerate_predictor_sets(
      get_candidate_vars(settings),
      s.get("min_subset_size", 1),
      s.get("max_subset_size", None),
      verbose=verbose
   )


# Modeling

def run_gpr_bma(df: pd.DataFrame, settings: dict, use_checkpoints: bool = None, verbose: bool = False) -> GPRBMARun:
   """
   Enumerate predictor sets, fit and score one GPR per set, then weight and average them under each criterion.

   Fitting and scoring fan out over a worker pool; weighting starts only after every model has been scored.

   :param df: Prepared observations, as returned by :func:`load_data`.
   :type df: pandas.DataFrame
   :param settings: Settings dictionary.
   :type settings: dict
   :param use_checkpoints: Whether to reuse and write checkpoints; defaults to `output.save_checkpoints`. A checkpoint
       is reused only when it was written for the same observations, settings and predictor sets.
   :type use_checkpoints: bool, optional
   :param verbose: If True, prints progress.
   :type verbose: bool, optional
   :returns: The predictor sets, scored models, skipped subsets and BMA results.
   :rtype: GPRBMARun
   :raises NoValidModelsError: If no model survives fitting and scoring.
   """
   if use_checkpoints is None:
      use_checkpoints = settings.get("output", {}).get("save_checkpoints", False)
   dep_var = get_dep_var(settings)
   policy = get_scoring_policy(settings)
   timing = TimingData()

   timing.start("enumerate")
   predictor_sets = enumerate_models(settings, verbose=verbose)
   timing.stop("enumerate")

   signature = _get_run_signature(df, settings, predictor_sets)

   timing.start("fit_and_score")
   scored, skipped = _run_stage(
      "gpr_bma_scored",
      fit_and_score_models,
      {"df": df, "predictor_sets": predictor_sets, "dep_var": dep_var, "settings": settings, "policy": policy, "verbose": verbose},
      use_checkpoints,
      signature,
      lambda result: _scored_stage_is_current(result, df, predictor_sets)
   )
   timing.stop("fit_and_score")

   if len(scored) == 0:
      raise NoValidModelsError(f"All {len(predictor_sets)} predictor sets failed to fit or score")

   timing.start("average")
   bma = _run_stage(
      "gpr_bma_results",
      run_bma,
      {"scored_models": scored, "df": df, "dep_var": dep_var, "settings": settings, "verbose": verbose},
      use_checkpoints,
      signature,
      lambda result: _bma_stage_is_current(result, df, scored)
   )
   timing.stop("average")

   return GPRBMARun(predictor_sets, scored, list(skipped) + list(bma.failures), bma, timing)


def run_baselines(df: pd.DataFrame, settings: dict, run_gwr_baseline: bool = True, verbose: bool = False) -> dict[str, SingleModelResults]:
   """
   Fit the comparison models: a single GPR over every candidate predictor, and GWR.

   :param df: Prepared observations.
   :type df: pandas.DataFrame
   :param settings: Settings dictionary.
   :type settings: dict
   :param run_gwr_baseline: Whether to fit GWR.
   :type run_gwr_baseline: bool, optional
   :param verbose: If True, prints progress.
   :type verbose: bool, optional
   :returns: Baseline results keyed by "gpr" and "gwr".
   :rtype: dict[str, SingleModelResults]
   """
   dep_var = get_dep_var(settings)
   baselines = {"gpr": run_gpr(df, dep_var, settings, verbose=verbose)}
   if run_gwr_baseline:
      baselines["gwr"] = run_gwr(df, dep_var, settings, verbose=verbose)
   if verbose:
      for results in baselines.values():
         print(results.summary())
   return baselines


def run_all(
    settings: dict,
    df: pd.DataFrame = None,
    run_gwr_baseline: bool = True,
    write_results: bool = True,
    use_checkpoints: bool = None,
    verbose: bool = False
) -> StudyResults:
   """
   Run the full study: load data, run GPR-BMA, fit the baselines, evaluate and write out the results.

   Results go under `output.path`; maps are drawn when `output.maps` is set.

   :param settings: Settings dictionary.
   :type settings: dict
   :param df: Raw observations to use instead of reading `data.filename`.
   :type df: pandas.DataFrame, optional
   :param run_gwr_baseline: Whether to fit GWR.
   :type run_gwr_baseline: bool, optional
   :param write_results: Whether to write tables, reports and maps.
   :type write_results: bool, optional
   :param use_checkpoints: Whether to reuse and write checkpoints; defaults to `output.save_checkpoints`.
   :type use_checkpoints: bool, optional
   :param verbose: If True, prints progress.
   :type verbose: bool, optional
   :returns: The study results.
   :rtype: StudyResults
   """
   timing = TimingData()

   timing.start("load")
   df = load_data(settings, df, verbose=verbose)
   timing.stop("load")

   run = run_gpr_bma(df, settings, use_checkpoints=use_checkpoints, verbose=verbose)
   timing.merge(run.timing)

   timing.start("baselines")
   baselines = run_baselines(df, settings, run_gwr_baseline=run_gwr_baseline, verbose=verbose)
   timing.stop("baselines")

   timing.start("evaluate")
   evaluation = evaluate_models(df, run.bma, baselines, settings, verbose=verbose)
   timing.stop("evaluate")

   summary = RunSummary(
      n_enumerated=len(run.predictor_sets),
      n_scored=len(run.scored_models),
      n_weighted=len(run.scored_models) - len(run.bma.failures),
      skipped=run.skipped,
      timing=timing
   )

   if write_results:
      outpath = get_output_path(settings)
      top_n = get_bma_settings(settings).get("top_n", 10)
      write_out_all_results(outpath, evaluation, run.bma, summary, top_n)
      if settings.get("output", {}).get("maps", True):
         if verbose:
            print(f"Writing maps to {outpath}/maps...")
         write_maps(outpath, df, evaluation)

   if verbose:
      print(evaluation.print())
      print(summary.print())

   return StudyResults(run, baselines, evaluation, summary)


# Read & write stuff

def from_checkpoint(path: str, func: callable, params: dict):
   """
   Read cached data from a checkpoint file if it exists, otherwise run the function to generate it and save it.

   :param path: Checkpoint name, relative to the checkpoint directory.
   :type path: str
   :param func: Function to run if the checkpoint is not available.
   :type func: callable
   :param params: Parameters for the function.
   :type params: dict
   :returns: The cached or freshly computed data.
   """
   return gprbmakit.checkpoint.from_checkpoint(path, func, params)


def delete_checkpoints(prefix: str):
   """
   Delete all checkpoints that match the given prefix.

   :param prefix: The prefix used to identify checkpoints to delete.
   :type prefix: str
   """
   return gprbmakit.checkpoint.delete_checkpoints(prefix)


def write_checkpoint(data, path: str):
   """
   Write data to a checkpoint file: a parquet file for dataframes, and a pickle file for anything else.
   """
   return gprbmakit.checkpoint.write_checkpoint(data, path)


def read_pickle(path: str):
   return gprbmakit.checkpoint.read_pickle(path)


def _run_stage(checkpoint: str, func: callable, params: dict, use_checkpoints: bool, signature: dict, is_current: callable):
   if not use_checkpoints:
      return func(**params)
   if gprbmakit.checkpoint.exists_checkpoint(checkpoint):
      if gprbmakit.checkpoint.checkpoint_signature_matches(checkpoint, signature):
         result = gprbmakit.checkpoint.read_checkpoint(checkpoint)
         if is_current(result):
            warnings.warn(f"Reusing checkpoint '{checkpoint}'; delete it to recompute this stage")
            return result
      warnings.warn(f"Checkpoint '{checkpoint}' was written for other observations or settings, recomputing this stage")
   result = func(**params)
   gprbmakit.checkpoint.write_checkpoint(result, checkpoint)
   gprbmakit.checkpoint.write_checkpoint_signature(checkpoint, signature)
   return result


def _get_run_signature(df: pd.DataFrame, settings: dict, predictor_sets: dict[str, PredictorSet]) -> dict:
   return {
      "observations": len(df),
      "columns": [str(c) for c in df.columns],
      "data_hash": str(int(pd.util.hash_pandas_object(df, index=True).sum())),
      "settings": json.loads(json.dumps(settings, sort_keys=True, default=str)),
      "predictor_sets": {key: list(entry.fields) for key, entry in predictor_sets.items()}
   }


def _scored_stage_is_current(result, df: pd.DataFrame, predictor_sets: dict[str, PredictorSet]) -> bool:
   scored, skipped = result
   ids = [s.id for s in scored] + [s.model_id for s in skipped]
   if sorted(ids) != sorted(predictor_sets.keys()):
      return False
   return all(s.n == len(df) for s in scored)


def _bma_stage_is_current(bma: BMAResults, df: pd.DataFrame, scored: list[ScoredModel]) -> bool:
   if len(bma.predictions) != len(df):
      return False
   return [s.id for s in bma.scored_models] == [s.id for s in scored]
