import json
import os
import pickle
from typing import Any

import pandas as pd

from gprbmakit.utilities.assertions import dicts_are_equal

CHECKPOINT_DIR = "out/checkpoints"


def from_checkpoint(path: str, func: callable, params: dict, use_checkpoint: bool = True) -> Any:
  """
  Return the checkpointed result at `path` if there is one, otherwise compute it with func(**params) and save it.
  """
  if use_checkpoint and exists_checkpoint(path):
    return read_checkpoint(path)
  else:
    result = func(**params)
    write_checkpoint(result, path)
    return result


def exists_checkpoint(path: str):
  extensions = ["parquet", "pickle"]
  for ext in extensions:
    if os.path.exists(f"{CHECKPOINT_DIR}/{path}.{ext}"):
      return True
  return False


def read_checkpoint(path: str) -> Any:
  full_path = f"{CHECKPOINT_DIR}/{path}.parquet"
  if os.path.exists(full_path):
    return pd.read_parquet(full_path)
  else:
    # If we don't find a parquet file, try to load a pickle
    return read_pickle(f"{CHECKPOINT_DIR}/{path}")


def write_checkpoint(data: Any, path: str):
  os.makedirs(CHECKPOINT_DIR, exist_ok=True)
  # a stale file of the other format would shadow this one on read
  for ext in ["parquet", "pickle"]:
    if os.path.exists(f"{CHECKPOINT_DIR}/{path}.{ext}"):
      os.remove(f"{CHECKPOINT_DIR}/{path}.{ext}")
  if isinstance(data, pd.DataFrame):
    data.to_parquet(f"{CHECKPOINT_DIR}/{path}.parquet")
  else:
    write_pickle(data, f"{CHECKPOINT_DIR}/{path}")


def delete_checkpoints(prefix: str):
  os.makedirs(CHECKPOINT_DIR, exist_ok=True)
  for file in os.listdir(CHECKPOINT_DIR):
    if file.startswith(prefix):
      os.remove(f"{CHECKPOINT_DIR}/{file}")


def read_pickle(path: str) -> Any:
  full_path = f"{path}.pickle"
  with open(full_path, "rb") as file:
    return pickle.load(file)


def write_pickle(data: Any, path: str):
  full_path = f"{path}.pickle"
  base_path = os.path.dirname(full_path)
  if base_path != "":
    os.makedirs(base_path, exist_ok=True)
  with open(full_path, "wb") as file:
    pickle.dump(data, file)


def write_checkpoint_signature(path: str, signature: dict):
  """
  Record what a checkpoint was computed from, next to the checkpoint itself.
  """
  os.makedirs(CHECKPOINT_DIR, exist_ok=True)
  with open(f"{CHECKPOINT_DIR}/{path}.signature.json", "w") as file:
    json.dump(signature, file, sort_keys=True, default=str)


def checkpoint_signature_matches(path: str, signature: dict) -> bool:
  signature_path = f"{CHECKPOINT_DIR}/{path}.signature.json"
  if not os.path.exists(signature_path):
    return False
  with open(signature_path, "r") as file:
    stored = json.load(file)
  # compare in serialized form so tuples and lists, or numpy and python scalars, agree
  expected = json.loads(json.dumps(signature, sort_keys=True, default=str))
  return dicts_are_equal(stored, expected)
