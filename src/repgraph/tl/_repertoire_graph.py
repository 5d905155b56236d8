from collections.abc import Iterable, Mapping, Sequence

import igraph as ig
import numpy as np
import pandas as pd
from scanpy import logging

from repgraph.ir_dist import MetricType, _doc_max_errors, _doc_metrics, find_similar_pairs
from repgraph.pp._shared_repertoire import _sample_columns, shared_matrix
from repgraph.util import (
    InvalidArgumentError,
    _check_columns,
    _doc_params,
    _doc_sample_cols,
    _doc_table_cols,
    _is_na,
)
from repgraph.util.graph import igraph_from_pairs

#: Vertex attributes set by :func:`build_graph`. They can't be used as group attributes.
BASE_ATTRIBUTES = ("label", "vseg", "repind", "prob", "people", "npeople")

_NO_SEGMENT = "nosegment"
_NO_PROB = -1.0
_SINGLE_INDIVIDUAL = "Individual"

_doc_data = """\
data
    Either a sequence of strings, a table with `label_col`, or a
    shared repertoire (e.g. from :func:`repgraph.pp.shared_repertoire`).
    Every row becomes a vertex; the row order is the vertex order.
"""


def _as_table(data: pd.DataFrame | Sequence[str], label_col: str) -> pd.DataFrame:
    if isinstance(data, pd.DataFrame):
        return data
    if isinstance(data, str):
        raise InvalidArgumentError("Expected a table or a sequence of strings, got a single string.")
    return pd.DataFrame({label_col: list(data)})


def _get_labels(table: pd.DataFrame, label_col: str) -> list[str]:
    """Get the sequences of a table. Raises if one of them is missing or empty."""
    _check_columns(table, [label_col], "Sequence column")
    labels = table[label_col].to_numpy(dtype=object)
    invalid = _is_na(labels) | np.array([not isinstance(x, str) for x in labels], dtype=bool)
    if np.any(invalid):
        raise InvalidArgumentError(
            f"Column '{label_col}' contains {np.sum(invalid)} missing, empty or non-string sequences "
            f"(first at row {np.flatnonzero(invalid)[0]})."
        )
    return list(labels)


def _encode_rows(mask: np.ndarray) -> list[str]:
    """Turn each row of a boolean matrix into a string of '0' and '1' characters."""
    chars = np.ascontiguousarray(mask.astype(np.uint8) + ord("0"))
    return [row.tobytes().decode("ascii") for row in chars]


def _check_vertex_count(g: ig.Graph, shared_rep: pd.DataFrame) -> None:
    if shared_rep.shape[0] != g.vcount():
        raise InvalidArgumentError(
            f"The table has {shared_rep.shape[0]} rows, but the graph has {g.vcount()} vertices. "
            "The graph must be built from the same table."
        )


@_doc_params(data=_doc_data, cols=_doc_table_cols, sample_cols=_doc_sample_cols)
def build_graph(
    data: pd.DataFrame | Sequence[str],
    pairs: Iterable[tuple[int, int]],
    *,
    label_col: str = "CDR3.amino.acid.sequence",
    seg_col: str = "V.segments",
    prob_col: str = "Probability",
    sample_cols: Sequence[str] | None = None,
    count_col: str = "People",
) -> ig.Graph:
    """\
    Build a repertoire graph from a sequence table and pairs of similar sequences.

    Sets the vertex attributes `label`, `vseg`, `repind` (1-based row index) and
    `prob`. If `data` is a shared repertoire (it has `count_col`, or `sample_cols`
    are given), :func:`repgraph.tl.set_people_vector` annotates the samples
    of each sequence. Otherwise, all sequences are considered to stem from a single
    sample called `"Individual"`.

    Parameters
    ----------
    {data}
    pairs
        0-based row index pairs, e.g. from :func:`repgraph.ir_dist.find_similar_pairs`.
        Self-loops and duplicate pairs are removed.
    {cols}
    {sample_cols}

    Returns
    -------
    Undirected :class:`igraph.Graph` with one vertex per row.
    """
    table = _as_table(data, label_col)
    labels = _get_labels(table, label_col)
    n = len(labels)

    g = igraph_from_pairs(n, pairs)
    g.vs["label"] = labels

    if seg_col in table.columns:
        segments = table[seg_col].to_numpy(dtype=object)
        # rows without a segment get the same sentinel as a table without segments
        g.vs["vseg"] = [_NO_SEGMENT if na else str(x) for x, na in zip(segments, _is_na(segments), strict=True)]
    else:
        g.vs["vseg"] = [_NO_SEGMENT] * n

    g.vs["repind"] = list(range(1, n + 1))

    if prob_col in table.columns:
        try:
            g.vs["prob"] = pd.to_numeric(table[prob_col]).astype(float).tolist()
        except (ValueError, TypeError) as e:
            raise InvalidArgumentError(f"Column '{prob_col}' must contain numbers: {e}") from e
    else:
        g.vs["prob"] = [_NO_PROB] * n

    if sample_cols is not None or count_col in table.columns:
        set_people_vector(g, table, sample_cols=sample_cols, count_col=count_col)
    else:
        g["people"] = [_SINGLE_INDIVIDUAL]
        g.vs["people"] = ["1"] * n
        g.vs["npeople"] = [1] * n

    logging.info(f"Built repertoire graph with {g.vcount()} vertices and {g.ecount()} edges.")  # type: ignore
    return g


@_doc_params(
    data=_doc_data, metric=_doc_metrics, max_errors=_doc_max_errors, cols=_doc_table_cols, sample_cols=_doc_sample_cols
)
def repertoire_graph(
    data: pd.DataFrame | Sequence[str],
    *,
    method: MetricType = "hamm",
    max_errors: int = 1,
    label_col: str = "CDR3.amino.acid.sequence",
    seg_col: str = "V.segments",
    prob_col: str = "Probability",
    sample_cols: Sequence[str] | None = None,
    count_col: str = "People",
    n_jobs: int = -1,
) -> ig.Graph:
    """\
    Make a repertoire graph.

    Vertices are the sequences of `data`; edges connect pairs of sequences with a
    hamming or edit distance of at most `max_errors`. See :func:`build_graph` for
    the vertex attributes.

    Parameters
    ----------
    {data}
    {metric}
    {max_errors}
    {cols}
    {sample_cols}
    n_jobs
        Number of CPU cores to use for the distance calculation.

    Returns
    -------
    Undirected :class:`igraph.Graph` with one vertex per row.
    """
    table = _as_table(data, label_col)
    labels = _get_labels(table, label_col)
    pairs = find_similar_pairs(labels, method, max_errors, n_jobs=n_jobs)
    return build_graph(
        table,
        pairs,
        label_col=label_col,
        seg_col=seg_col,
        prob_col=prob_col,
        sample_cols=sample_cols,
        count_col=count_col,
    )


@_doc_params(sample_cols=_doc_sample_cols)
def set_people_vector(
    g: ig.Graph,
    shared_rep: pd.DataFrame,
    *,
    sample_cols: Sequence[str] | None = None,
    count_col: str = "People",
) -> ig.Graph:
    """\
    Annotate the samples that contain the sequence of each vertex.

    Sets the vertex attribute `people`, a binary string with one character per
    sample (`'1'` if the count in that sample is > 0), and `npeople`, the number of
    samples containing the sequence. The ordered sample names are stored in the graph
    attribute `people`.

    .. note::
        `npeople` is taken from `count_col` as is and not recomputed from the binary
        strings. Rows where both disagree are reported with a warning.

    Parameters
    ----------
    g
        Repertoire graph built from `shared_rep`. Modified inplace.
    shared_rep
        Shared repertoire with one row per vertex.
    {sample_cols}

    Returns
    -------
    The modified graph.
    """
    _check_columns(shared_rep, [count_col], "Count column")
    sample_cols = _sample_columns(shared_rep, sample_cols, count_col)
    _check_vertex_count(g, shared_rep)

    presence = shared_matrix(shared_rep, sample_cols=sample_cols, count_col=count_col).to_numpy() > 0
    try:
        counts = pd.to_numeric(shared_rep[count_col]).to_numpy(dtype=float, na_value=np.nan)
    except (ValueError, TypeError) as e:
        raise InvalidArgumentError(f"Column '{count_col}' must contain integer counts: {e}") from e
    not_integral = np.flatnonzero(~np.isfinite(counts) | (np.round(counts) != counts))
    if len(not_integral):
        raise InvalidArgumentError(
            f"Column '{count_col}' must contain integer counts, got {counts[not_integral[0]]} "
            f"at row {not_integral[0]}."
        )
    npeople = counts.astype(int).tolist()

    inconsistent = np.flatnonzero(presence.sum(axis=1) != np.array(npeople, dtype=int))
    if len(inconsistent):
        logging.warning(
            f"For {len(inconsistent)} sequences, '{count_col}' differs from the number of samples with a count > 0 "
            f"(first at row {inconsistent[0]}). The values of '{count_col}' are used as `npeople`."
        )  # type: ignore

    g["people"] = [str(s) for s in sample_cols]
    g.vs["people"] = _encode_rows(presence)
    g.vs["npeople"] = npeople
    logging.info(f"Stored sample presence of {len(sample_cols)} samples in `g.vs['people']`.")  # type: ignore
    return g


def _group_vector(groups: Mapping[str, Iterable[int]], n_samples: int) -> dict[int, str]:
    """Assign each 1-based sample index to its group. The last group listing an index wins."""
    assignment = {}
    for group, samples in groups.items():
        if isinstance(samples, str) or not isinstance(samples, Iterable):
            raise InvalidArgumentError(
                f"Group '{group}' must be a collection of sample indices, got {type(samples).__name__}."
            )
        for sample in samples:
            if isinstance(sample, bool) or not isinstance(sample, int | np.integer):
                raise InvalidArgumentError(f"Sample indices must be integers, got {sample!r} in group '{group}'.")
            if not 1 <= sample <= n_samples:
                raise InvalidArgumentError(
                    f"Sample index {sample} in group '{group}' is out of range. "
                    f"Valid indices are 1 to {n_samples}."
                )
            if sample in assignment and assignment[sample] != group:
                logging.warning(
                    f"Sample {sample} is listed in groups '{assignment[sample]}' and '{group}'. "
                    f"It is assigned to '{group}'."
                )  # type: ignore
            assignment[int(sample)] = group
    return assignment


@_doc_params(sample_cols=_doc_sample_cols)
def set_group_vector(
    shared_rep: pd.DataFrame,
    g: ig.Graph,
    attr_name: str,
    groups: Mapping[str, Iterable[int]],
    *,
    sample_cols: Sequence[str] | None = None,
    count_col: str = "People",
) -> ig.Graph:
    """\
    Annotate the groups of samples that contain the sequence of each vertex.

    Sets the vertex attribute `attr_name` to a binary string with one character
    per group. A character is `'1'` if any sample of the group has a count > 0.
    Group names are sorted, which fixes the positions in the string. The sorted
    names are stored in the graph attribute `attr_name`.

    .. warning::
        A sample belongs to one group only. If a sample index is listed for several
        groups, the group that comes last in `groups` wins. Samples that are
        not listed in any group are ignored.

    Parameters
    ----------
    shared_rep
        Shared repertoire with one row per vertex.
    g
        Repertoire graph built from `shared_rep`. Modified inplace.
    attr_name
        Name of the new vertex and graph attribute.
    groups
        Mapping group name -> 1-based indices of the samples (in the order of `sample_cols`)
        that belong to the group.
    {sample_cols}

    Returns
    -------
    The modified graph.

    Examples
    --------
    >>> g = repgraph.tl.set_group_vector(shared_rep, g, "twins", {{"A": [1, 2], "B": [3, 4]}})
    >>> repgraph.get.group_names(g, "twins", 0)
    'A|B'
    """
    if not isinstance(attr_name, str) or not attr_name:
        raise InvalidArgumentError("`attr_name` must be a non-empty string.")
    if attr_name in BASE_ATTRIBUTES:
        raise InvalidArgumentError(f"`attr_name` must not be one of the base attributes {BASE_ATTRIBUTES}.")
    if not len(groups):
        raise InvalidArgumentError("Need at least one group.")
    if not all(isinstance(k, str) for k in groups):
        raise InvalidArgumentError("Group names must be strings.")

    sample_cols = _sample_columns(shared_rep, sample_cols, count_col)
    _check_vertex_count(g, shared_rep)
    assignment = _group_vector(groups, len(sample_cols))

    group_names = sorted(groups)
    group_pos = {name: i for i, name in enumerate(group_names)}
    membership = np.zeros((len(sample_cols), len(group_names)), dtype=np.int64)
    for sample, group in assignment.items():
        membership[sample - 1, group_pos[group]] = 1

    presence = shared_matrix(shared_rep, sample_cols=sample_cols, count_col=count_col).to_numpy() > 0
    in_group = (presence.astype(np.int64) @ membership) > 0

    g[attr_name] = group_names
    g.vs[attr_name] = _encode_rows(in_group)
    logging.info(f"Stored {len(group_names)} groups in `g.vs['{attr_name}']`.")  # type: ignore
    return g
