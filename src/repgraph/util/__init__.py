import os
from collections.abc import Sequence
from textwrap import dedent

import numpy as np
import pandas as pd
from joblib import Parallel
from scanpy import logging
from tqdm.auto import tqdm

# reexport tqdm
__all__ = ["InvalidArgumentError", "tqdm"]


class InvalidArgumentError(ValueError):
    """\
    Raised when a function receives an argument it cannot work with.

    This covers missing columns, empty required collections, out-of-range
    indices, length mismatches and unknown option values. It is raised before
    any graph is modified.
    """


def _doc_params(**kwds):
    """\
    Docstrings should start with "\\" in the first line for proper formatting.
    """

    def dec(obj):
        obj.__orig_doc__ = obj.__doc__
        obj.__doc__ = dedent(obj.__doc__).format_map(kwds)
        return obj

    return dec


_doc_table_cols = """\
label_col
    Column with the sequences. Every sequence becomes the `label` of a vertex.
seg_col
    Column with V-segments. If it is missing from the table, all vertices get
    the segment `"nosegment"`.
prob_col
    Column with generation probabilities. If it is missing from the table, all
    vertices get the probability `-1`.
"""

_doc_sample_cols = """\
sample_cols
    Columns with per-sample counts, in the order they should appear in the
    binary strings. If `None`, all columns to the right of `count_col` are used.
count_col
    Column with the number of samples that contain a sequence.
"""

_doc_paste = """\
paste
    If `True`, concatenate the names of a vertex to one string, separated by `|`.
    Otherwise return a list of names for each vertex.
"""


def _is_na2(x):
    """Check if an object is missing or an empty string.
    The function is vectorized over numpy arrays or pandas Series
    but also works for single values.

    Strings such as `"None"` or `"nan"` are regular values.
    """
    return pd.isnull(x) or (isinstance(x, str) and x == "")


_is_na = np.vectorize(_is_na2, otypes=[bool])


def _check_columns(df: pd.DataFrame, columns: Sequence[str], what: str = "Column") -> None:
    """Raise an InvalidArgumentError listing all `columns` that are not in `df`."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InvalidArgumentError(f"{what} not found in the table: {', '.join(map(str, missing))}")


def _parallelize_with_joblib(delayed_objects, *, total=None, **kwargs):
    """Wrapper around joblib.Parallel that shows a progressbar if the backend supports it.

    Progressbar solution from https://stackoverflow.com/a/76726101/2340703
    """
    try:
        return tqdm(Parallel(return_as="generator", **kwargs)(delayed_objects), total=total)
    except ValueError:
        logging.info(
            "Backend doesn't support return_as='generator'. No progress bar will be shown. "
            "Consider setting verbosity in joblib.parallel_config"
        )
        return Parallel(return_as="list", **kwargs)(delayed_objects)


def _get_usable_cpus(n_jobs: int = 0):
    """Get the number of CPUs available to the process
    If `n_jobs` is specified and > 0 that value will be returned unaltered.
    Otherwise will try to determine the number of CPUs available to the process which
    is not necessarily the number of CPUs available on the system.
    On MacOS, `os.sched_getaffinity` is not implemented, therefore we just return the cpu count there.
    """
    if n_jobs > 0:
        return n_jobs

    try:
        usable_cpus = len(os.sched_getaffinity(0))
    except AttributeError:
        usable_cpus = os.cpu_count()

    return usable_cpus
