import logging
import os

import numpy as np

logger = logging.getLogger()


PROTON_MASS = 1.007276466812
WATER_MASS = 18.010564684

# scores closer than this are treated as equal
SCORE_EPSILON = 1e-9

USE_NUMBA_CACHING = os.environ.get("USE_NUMBA_CACHING", "0") == "1"


def get_contiguous_partitions(n_items: int, n_partitions: int) -> list[tuple[int, int]]:
    """Split the range [0, n_items) into contiguous, non-empty partitions of near equal size.

    Parameters
    ----------

    n_items : int
        Number of items to split.

    n_partitions : int
        Requested number of partitions. Fewer partitions are returned if there are fewer items.

    Returns
    -------
    list[tuple[int, int]]
        List of (start, stop) tuples, stop is exclusive.

    """
    if n_items <= 0:
        return []

    n_partitions = max(1, min(n_partitions, n_items))
    bounds = np.linspace(0, n_items, n_partitions + 1).astype(np.int64)
    return [
        (int(start), int(stop))
        for start, stop in zip(bounds[:-1], bounds[1:], strict=True)
        if stop > start
    ]


def merge_sets_into(target: dict, source: dict) -> None:
    """Merge a dict of sets into another dict of sets in-place."""
    for key, values in source.items():
        if key in target:
            target[key].update(values)
        else:
            target[key] = set(values)
