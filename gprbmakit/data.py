import os
import warnings

import numpy as np
import pandas as pd
import geopandas as gpd
from sklearn.preprocessing import StandardScaler

from gprbmakit.utilities.settings import get_coordinate_fields, get_response_field, get_dep_var, \
  get_candidate_vars, get_key_field


def load_dataset(settings: dict, filename: str = None, verbose: bool = False) -> pd.DataFrame:
  """
  Load the tract-level input table.

  :param settings: Settings dictionary.
  :type settings: dict
  :param filename: Path to a .csv or .parquet file; defaults to `data.filename`.
  :type filename: str, optional
  :param verbose: Whether to print verbose output.
  :type verbose: bool, optional
  :returns: The raw observations.
  :rtype: pandas.DataFrame
  """
  if filename is None:
    filename = settings.get("data", {}).get("filename", "in/boston.csv")
  if verbose:
    print(f"Loading dataset from {filename}...")
  df = _load_dataframe(filename)
  if verbose:
    print(f"--> {len(df)} rows, {len(df.columns)} columns")
  return df


def _load_dataframe(filename: str) -> pd.DataFrame:
  if not os.path.exists(filename):
    raise FileNotFoundError(f"Dataset not found: {filename}")
  ext = os.path.splitext(filename)[1].lower()
  if ext == ".csv":
    return pd.read_csv(filename)
  elif ext == ".parquet":
    return pd.read_parquet(filename)
  raise ValueError(f"Unsupported dataset extension '{ext}', expected .csv or .parquet")


def validate_dataset(df: pd.DataFrame, settings: dict) -> list[str]:
  """
  Check that the dataset carries what the pipeline needs.

  Coordinates and the response are required. Candidate predictors that are absent only produce a warning;
  every predictor set that needs one is skipped at fit time.

  :returns: The candidate predictors that are missing.
  :rtype: list[str]
  :raises ValueError: If coordinates or the response are missing, or a present candidate is not numeric.
  """
  lon_field, lat_field = get_coordinate_fields(settings)
  response = get_response_field(settings)
  for field in [lon_field, lat_field, response]:
    if field not in df:
      raise ValueError(f"Necessary field '{field}' not found in dataset.")

  missing = [v for v in get_candidate_vars(settings) if v not in df]
  if len(missing) > 0:
    warnings.warn(f"Candidate predictors not found in dataset, subsets using them will be skipped: {missing}")

  for v in get_candidate_vars(settings) + [response]:
    if v in df and not pd.api.types.is_numeric_dtype(df[v]):
      raise ValueError(f"Field '{v}' must be numeric, found dtype {df[v].dtype}")

  return missing


def preprocess_dataset(df_in: pd.DataFrame, settings: dict, verbose: bool = False) -> pd.DataFrame:
  """
  Produce the cleaned, standardized observation table the models are fit on.

  - Drops rows with missing values in the coordinates, the response or any present candidate predictor
  - Copies raw coordinates into "longitude" / "latitude"
  - Writes the (log-transformed) response into the dependent variable column
  - Standardizes present candidate predictors to zero mean and unit variance, in place

  The input frame is not modified.

  :param df_in: Raw observations.
  :type df_in: pandas.DataFrame
  :param settings: Settings dictionary.
  :type settings: dict
  :param verbose: Whether to print verbose output.
  :type verbose: bool, optional
  :returns: The prepared observations.
  :rtype: pandas.DataFrame
  """
  validate_dataset(df_in, settings)
  df = df_in.copy()

  lon_field, lat_field = get_coordinate_fields(settings)
  response = get_response_field(settings)
  dep_var = get_dep_var(settings)
  candidates = [v for v in get_candidate_vars(settings) if v in df]
  key_field = get_key_field(settings)

  used = list(dict.fromkeys([lon_field, lat_field, response] + candidates))
  na_rows = df[used].isna().any(axis=1)
  if na_rows.sum() > 0:
    warnings.warn(f"Dropping {na_rows.sum()} rows with missing values in {used}")
    df = df[~na_rows].copy()

  df.reset_index(drop=True, inplace=True)
  if key_field not in df:
    df[key_field] = np.arange(len(df)).astype(str)

  df["longitude"] = df[lon_field].astype(np.float64)
  df["latitude"] = df[lat_field].astype(np.float64)

  if settings.get("data", {}).get("log_response", True):
    if df[response].le(0).any():
      raise ValueError(f"Response '{response}' must be strictly positive to be log-transformed")
    df[dep_var] = np.log(df[response].astype(np.float64))
  else:
    df[dep_var] = df[response].astype(np.float64)

  if settings.get("data", {}).get("standardize", True) and len(candidates) > 0:
    scaler = StandardScaler()
    df[candidates] = scaler.fit_transform(df[candidates].astype(np.float64))

  if verbose:
    print(f"--> prepared {len(df)} observations, {len(candidates)} candidate predictors, response '{dep_var}'")

  return df


def get_coords(df: pd.DataFrame) -> list[tuple[float, float]]:
  return list(zip(df["longitude"], df["latitude"]))


def get_gdf(df: pd.DataFrame) -> gpd.GeoDataFrame:
  """
  Point geometries for each observation, in EPSG:4326.
  """
  return gpd.GeoDataFrame(
    df.copy(),
    geometry=gpd.points_from_xy(df["longitude"], df["latitude"]),
    crs="EPSG:4326"
  )
