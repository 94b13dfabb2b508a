import itertools
import math


class PredictorSet:
  """
  An ordered, duplicate-free selection of predictor fields that defines one model's feature space.

  Two predictor sets with the same members compare equal regardless of the order of their fields.

  Attributes:
      id (str): Stable identifier encoding the subset size and its position within that size, e.g. "model_2_5"
      size (int): Number of predictors
      index (int): 1-based position of this combination among all combinations of the same size
      fields (tuple[str]): The predictor field names, in candidate-list order
  """

  def __init__(self, size: int, index: int, fields: tuple[str, ...]):
    if len(fields) == 0:
      raise ValueError("A predictor set needs at least one field")
    if len(set(fields)) != len(fields):
      raise ValueError(f"Duplicate fields in predictor set: {fields}")
    if size != len(fields):
      raise ValueError(f"Size {size} does not match the number of fields ({len(fields)})")
    self._size = size
    self._index = index
    self._fields = tuple(fields)

  @property
  def id(self) -> str:
    return make_predictor_set_id(self._size, self._index)

  @property
  def size(self) -> int:
    return self._size

  @property
  def index(self) -> int:
    return self._index

  @property
  def fields(self) -> tuple[str, ...]:
    return self._fields

  def missing_fields(self, columns) -> list[str]:
    """
    Return the fields of this set that are not present in the given columns.

    :param columns: Available column names.
    :type columns: Iterable[str]
    :returns: The absent fields, in set order.
    :rtype: list[str]
    """
    columns = set(columns)
    return [field for field in self._fields if field not in columns]

  def __contains__(self, field: str):
    return field in self._fields

  def __len__(self):
    return self._size

  def __iter__(self):
    return iter(self._fields)

  def __eq__(self, other):
    if not isinstance(other, PredictorSet):
      return NotImplemented
    return frozenset(self._fields) == frozenset(other._fields)

  def __hash__(self):
    return hash(frozenset(self._fields))

  def __repr__(self):
    return f"PredictorSet({self.id}: {', '.join(self._fields)})"

  def __getstate__(self):
    return {"size": self._size, "index": self._index, "fields": self._fields}

  def __setstate__(self, state):
    self._size = state["size"]
    self._index = state["index"]
    self._fields = tuple(state["fields"])


def make_predictor_set_id(size: int, index: int) -> str:
  return f"model_{size}_{index}"


def count_predictor_sets(k: int, min_size: int = 1, max_size: int | None = None) -> int:
  """
  Number of predictor sets produced for k candidates and the given size range.

  For the full range 1..k this is 2^k - 1.
  """
  if max_size is None:
    max_size = k
  return sum(math.comb(k, n) for n in range(min_size, max_size + 1))


def enumerate_predictor_sets(
    candidate_vars: list[str],
    min_size: int = 1,
    max_size: int | None = None,
    verbose: bool = False
) -> dict[str, PredictorSet]:
  """
  Enumerate every combination of the candidate variables for each subset size in [min_size, max_size].

  Combinations are produced size by size, and within a size in lexicographic combination order over the
  candidate list, so identifiers are stable across runs.

  :param candidate_vars: Candidate predictor names. Must be non-empty and duplicate-free.
  :type candidate_vars: list[str]
  :param min_size: Smallest subset size (default 1).
  :type min_size: int, optional
  :param max_size: Largest subset size; None means the number of candidates.
  :type max_size: int, optional
  :param verbose: Whether to print progress.
  :type verbose: bool, optional
  :returns: Ordered mapping of predictor set id to PredictorSet.
  :rtype: dict[str, PredictorSet]
  :raises ValueError: If the candidate list is empty, has duplicates, or the size range is invalid.
  """
  candidate_vars = list(candidate_vars)
  k = len(candidate_vars)
  if k == 0:
    raise ValueError("No candidate variables defined. Please check settings `data.candidate_vars`")

  duplicates = sorted({v for v in candidate_vars if candidate_vars.count(v) > 1})
  if len(duplicates) > 0:
    raise ValueError(f"Candidate variables must be unique, found duplicates: {duplicates}")

  if max_size is None:
    max_size = k
  if min_size < 1 or max_size > k or min_size > max_size:
    raise ValueError(f"Invalid subset size range [{min_size}, {max_size}] for {k} candidate variables")

  if verbose:
    print(f"Enumerating {count_predictor_sets(k, min_size, max_size)} predictor sets from {k} candidates...")

  results = {}
  for size in range(min_size, max_size + 1):
    for i, combo in enumerate(itertools.combinations(candidate_vars, size)):
      predictor_set = PredictorSet(size, i + 1, combo)
      results[predictor_set.id] = predictor_set

  return results
