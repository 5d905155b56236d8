"""Find pairs of similar immune receptor sequences"""

from collections.abc import Sequence
from typing import Literal

import numpy as np
from scanpy import logging
from scipy.sparse import csr_matrix

from repgraph.util import InvalidArgumentError, _doc_params
from repgraph.util.graph import pairs_from_sparse_matrix

from . import metrics

MetricType = Literal["hamm", "hamming", "lev", "levenshtein"] | metrics.DistanceCalculator

_doc_metrics = """\
method
    You can choose one of the following metrics:
      * `hamm` (or `hamming`) -- Hamming distance. Only sequences of equal
        length are compared. See :class:`~repgraph.ir_dist.metrics.HammingDistanceCalculator`.
      * `lev` (or `levenshtein`) -- Levenshtein edit distance between sequences
        of any length. See :class:`~repgraph.ir_dist.metrics.LevenshteinDistanceCalculator`.
      * any instance of :class:`~repgraph.ir_dist.metrics.DistanceCalculator`.
        Its own cutoff is used and `max_errors` is ignored.
"""

_doc_max_errors = """\
max_errors
    Maximal distance between two sequences that are considered similar.
    Must be a non-negative integer.
"""

_METRIC_ALIASES = {
    "hamm": "hamming",
    "hamming": "hamming",
    "lev": "levenshtein",
    "levenshtein": "levenshtein",
}


def _get_metric_key(metric: MetricType) -> str:
    return "custom" if isinstance(metric, metrics.DistanceCalculator) else _METRIC_ALIASES[metric]  # type: ignore


def _get_distance_calculator(metric: MetricType, cutoff: int, *, n_jobs=-1, **kwargs) -> metrics.DistanceCalculator:
    """Returns an instance of :class:`~repgraph.ir_dist.metrics.DistanceCalculator`
    given a metric.
    """
    if isinstance(cutoff, bool) or not isinstance(cutoff, int | np.integer) or cutoff < 0:
        raise InvalidArgumentError(f"`max_errors` must be a non-negative integer, got {cutoff!r}")

    if isinstance(metric, metrics.DistanceCalculator):
        return metric

    if not isinstance(metric, str) or metric not in _METRIC_ALIASES:
        raise InvalidArgumentError(
            f"Invalid distance metric: {metric!r}. Choose one of {', '.join(map(repr, _METRIC_ALIASES))}."
        )

    metric = _METRIC_ALIASES[metric]
    if metric == "levenshtein":
        dist_calc = metrics.LevenshteinDistanceCalculator(cutoff=cutoff, n_jobs=n_jobs, **kwargs)
    else:
        dist_calc = metrics.HammingDistanceCalculator(cutoff=cutoff, n_jobs=n_jobs, **kwargs)

    return dist_calc


def _check_sequences(seqs: Sequence[str], name: str = "seqs") -> list[str]:
    seqs = list(seqs)
    not_str = [i for i, s in enumerate(seqs) if not isinstance(s, str)]
    if not_str:
        raise InvalidArgumentError(f"All elements of `{name}` must be strings. Offending positions: {not_str[:10]}")
    return seqs


@_doc_params(metric=_doc_metrics, max_errors=_doc_max_errors, dist_mat=metrics._doc_dist_mat)
def sequence_dist(
    seqs: Sequence[str],
    seqs2: Sequence[str] | None = None,
    *,
    method: MetricType = "hamm",
    max_errors: int = 1,
    n_jobs: int = -1,
    **kwargs,
) -> csr_matrix:
    """\
    Calculate a sequence x sequence distance matrix.

    {dist_mat}

    When `seqs` or `seqs2` includes non-unique values, the function internally
    uses only unique sequences to calculate the distances. Note that, if the
    input arrays contain large numbers of duplicated values (i.e. hundreds each),
    this will lead to large "dense" blocks in the sparse matrix.

    Parameters
    ----------
    seqs
        Nucleotide or amino acid sequences.
    seqs2
        Second array sequences. When omitted, `sequence_dist` computes
        the square matrix of `seqs`.
    {metric}
    {max_errors}
    n_jobs
        Number of CPU cores to use for the distance calculation.
    kwargs
        Additional parameters passed to the :class:`~repgraph.ir_dist.metrics.DistanceCalculator`.

    Returns
    -------
    Sparse pairwise distance matrix. Symmetrical if `seqs2` is omitted.
    """
    dist_calc = _get_distance_calculator(method, max_errors, n_jobs=n_jobs, **kwargs)

    seqs = _check_sequences(seqs)
    if seqs2 is not None:
        seqs2 = _check_sequences(seqs2, "seqs2")

    shape = (len(seqs), len(seqs2) if seqs2 is not None else len(seqs))
    if shape[0] == 0 or shape[1] == 0:
        return csr_matrix(shape, dtype=dist_calc.DTYPE)

    seqs_unique, seqs_unique_inverse = np.unique(seqs, return_inverse=True)  # type: ignore
    if seqs2 is not None:
        seqs2_unique, seqs2_unique_inverse = np.unique(seqs2, return_inverse=True)  # type: ignore
    else:
        seqs2_unique, seqs2_unique_inverse = None, seqs_unique_inverse

    logging.info(f"Calculating distances with metric {_get_metric_key(method)}")  # type: ignore

    dist_mat = dist_calc.calc_dist_mat(seqs_unique, seqs2_unique)

    # Slicing with CSR is faster than with DOK
    dist_mat = dist_mat.tocsr()

    logging.hint("Expanding non-unique sequences to sequence x sequence matrix")  # type: ignore
    i, j = np.meshgrid(
        np.ravel(seqs_unique_inverse), np.ravel(seqs2_unique_inverse), sparse=True, indexing="ij"
    )
    dist_mat = dist_mat[i, j]

    return csr_matrix(dist_mat)


@_doc_params(metric=_doc_metrics, max_errors=_doc_max_errors)
def find_similar_pairs(
    seqs: Sequence[str],
    method: MetricType = "hamm",
    max_errors: int = 1,
    *,
    n_jobs: int = -1,
) -> set[tuple[int, int]]:
    """\
    Find all pairs of sequences whose distance is at most `max_errors`.

    Identical sequences at different positions always form a pair.

    Parameters
    ----------
    seqs
        Nucleotide or amino acid sequences.
    {metric}
    {max_errors}
    n_jobs
        Number of CPU cores to use for the distance calculation.

    Returns
    -------
    Set of index pairs `(i, j)` with `i < j`. Each unordered pair is contained once.
    """
    dist_mat = sequence_dist(seqs, method=method, max_errors=max_errors, n_jobs=n_jobs)
    pairs = pairs_from_sparse_matrix(dist_mat)
    logging.info(f"Found {len(pairs)} pairs of similar sequences.")  # type: ignore
    return pairs
