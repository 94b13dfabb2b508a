import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import geopandas as gpd
from matplotlib.colors import TwoSlopeNorm, Normalize
from matplotlib.ticker import FuncFormatter

from gprbmakit.utilities.format import fancy_format


def plot_value_surface(
    title: str,
    values: np.ndarray,
    gdf: gpd.GeoDataFrame,
    cmap: str = None,
    norm: str = None,
    label: str = "Value",
    out_file: str = None
):
  """
  Plot values over the observations' geometries.

  :param title: Plot title.
  :type title: str
  :param values: One value per row of gdf.
  :type values: numpy.ndarray
  :param gdf: GeoDataFrame containing geometries.
  :type gdf: geopandas.GeoDataFrame
  :param cmap: Colormap to use ("viridis" if None, "coolwarm" for two-slope plots).
  :type cmap: str, optional
  :param norm: "two_slope" to center the colors on zero (for residuals), or None to span the 5th-95th percentile.
  :type norm: str, optional
  :param label: Colorbar label.
  :type label: str, optional
  :param out_file: If given, save the figure there instead of showing it.
  :type out_file: str, optional
  """
  values = np.asarray(values, dtype=np.float64)
  if len(values) != len(gdf):
    raise ValueError(f"Expected {len(gdf)} values, got {len(values)}")

  plt.close('all')
  fig = plt.figure(figsize=(10, 10))
  plt.title(title)

  vmin = np.quantile(values, 0.05)
  vmax = np.quantile(values, 0.95)

  if norm == "two_slope":
    vmax = max(abs(vmin), abs(vmax), 1e-12)
    _norm = TwoSlopeNorm(vmin=-vmax, vcenter=0.0, vmax=vmax)
    if cmap is None:
      cmap = "coolwarm"
  else:
    if vmax <= vmin:
      vmax = vmin + 1e-12
    _norm = Normalize(vmin=vmin, vmax=vmax)
    if cmap is None:
      cmap = "viridis"

  gdf_slice = gdf[["geometry"]].copy()
  gdf_slice["values"] = values

  ax = gdf_slice.plot(column="values", cmap=cmap, norm=_norm, ax=plt.gca(), markersize=12)
  mappable = ax.collections[0]

  cbar = plt.colorbar(mappable, ax=ax)
  cbar.ax.yaxis.set_major_formatter(FuncFormatter(lambda x, _: fancy_format(x)))
  cbar.set_label(label, fontsize=12)

  if out_file is not None:
    os.makedirs(os.path.dirname(out_file) or ".", exist_ok=True)
    fig.savefig(out_file, bbox_inches="tight")
    plt.close(fig)
  else:
    plt.show()


def plot_histogram_df(df: pd.DataFrame, fields: list[str], xlabel: str = "", ylabel: str = "", title: str = "", bins=50, out_file: str = None):
  plt.close('all')
  fig = plt.figure(figsize=(10, 6))
  for field in fields:
    data = df[field]
    data = data[~data.isna()]
    plt.hist(data, bins=bins, label=field, alpha=0.25)
  plt.xlabel(xlabel)
  plt.ylabel(ylabel)
  plt.title(title)
  plt.legend()
  if out_file is not None:
    os.makedirs(os.path.dirname(out_file) or ".", exist_ok=True)
    fig.savefig(out_file, bbox_inches="tight")
    plt.close(fig)
  else:
    plt.show()
