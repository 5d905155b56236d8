from collections.abc import Mapping, Sequence

import pandas as pd
from scanpy import logging

from repgraph.util import InvalidArgumentError, _check_columns, _doc_params, _doc_sample_cols


def _sample_columns(shared_rep: pd.DataFrame, sample_cols: Sequence[str] | None, count_col: str) -> list[str]:
    """Resolve the per-sample columns of a shared repertoire.

    If `sample_cols` is not given, these are all columns to the right of `count_col`.
    """
    if sample_cols is None:
        if count_col not in shared_rep.columns:
            raise InvalidArgumentError(
                f"Column '{count_col}' not found in the table. Either pass `sample_cols` explicitly or "
                "use a shared repertoire with a count column."
            )
        sample_cols = list(shared_rep.columns[shared_rep.columns.get_loc(count_col) + 1 :])
    else:
        sample_cols = list(sample_cols)

    if not len(sample_cols):
        raise InvalidArgumentError("The shared repertoire needs at least one sample column.")
    if len(set(sample_cols)) != len(sample_cols):
        raise InvalidArgumentError("Sample columns must be unique.")
    _check_columns(shared_rep, sample_cols, "Sample column")
    return sample_cols


@_doc_params(sample_cols=_doc_sample_cols)
def shared_matrix(
    shared_rep: pd.DataFrame,
    *,
    sample_cols: Sequence[str] | None = None,
    count_col: str = "People",
) -> pd.DataFrame:
    """\
    Get the sequence x sample count matrix of a shared repertoire.

    Parameters
    ----------
    shared_rep
        Shared repertoire, e.g. generated by :func:`repgraph.pp.shared_repertoire`.
    {sample_cols}

    Returns
    -------
    DataFrame with one column per sample, in the order of `sample_cols`. Missing values are
    replaced by `0`.
    """
    sample_cols = _sample_columns(shared_rep, sample_cols, count_col)
    try:
        mat = shared_rep.loc[:, sample_cols].apply(pd.to_numeric)
    except (ValueError, TypeError) as e:
        raise InvalidArgumentError(f"Sample columns must contain numeric counts: {e}") from e
    return mat.fillna(0)


def shared_repertoire(
    repertoires: Mapping[str, pd.DataFrame],
    *,
    label_col: str = "CDR3.amino.acid.sequence",
    count_col: str = "Read.count",
    seg_col: str | None = None,
    people_col: str = "People",
) -> pd.DataFrame:
    """\
    Combine per-sample repertoires to a shared repertoire.

    The shared repertoire has one row per distinct sequence (or per distinct
    sequence and segment, if `seg_col` is given). It holds the sequence, the optional
    segment, the number of samples the sequence was found in and one column
    per sample with the summed counts of the sequence in that sample. Samples that
    don't contain a sequence have a missing value in that row.

    Rows are sorted by the number of samples (descending), then by sequence.

    Parameters
    ----------
    repertoires
        Mapping sample name -> repertoire of that sample. Sample columns are
        created in the order of this mapping.
    label_col
        Column with the sequences.
    count_col
        Column with the abundance of a sequence within a sample.
    seg_col
        Column with V-segments. If given, a sequence found with different
        segments results in one row per segment.
    people_col
        Name of the column with the number of samples that contain a sequence.

    Returns
    -------
    Shared repertoire as :class:`~pandas.DataFrame`.
    """
    if not len(repertoires):
        raise InvalidArgumentError("Need at least one repertoire to build a shared repertoire.")
    keys = [label_col] if seg_col is None else [label_col, seg_col]
    for sample, df in repertoires.items():
        _check_columns(df, [*keys, count_col], f"Column of repertoire '{sample}'")

    sample_names = list(repertoires)
    if people_col in sample_names or any(k in sample_names for k in keys):
        raise InvalidArgumentError("Sample names must not clash with the key or count columns.")

    long_df = pd.concat(
        {sample: df.loc[:, [*keys, count_col]] for sample, df in repertoires.items()},
        names=["_sample", None],
    ).reset_index(level="_sample")
    n_na = long_df[keys].isna().any(axis=1).sum()
    if n_na:
        logging.warning(f"Dropping {n_na} rows with missing sequence or segment.")  # type: ignore

    counts = (
        long_df.groupby([*keys, "_sample"], dropna=True, observed=True)[count_col]
        .sum()
        .unstack("_sample")
        .reindex(columns=sample_names)
    )
    counts.columns.name = None

    res = counts.reset_index()
    res.insert(len(keys), people_col, counts.notna().sum(axis=1).to_numpy())
    res = res.sort_values([people_col, label_col], ascending=[False, True], kind="stable").reset_index(drop=True)

    logging.info(f"Built shared repertoire of {res.shape[0]} sequences from {len(sample_names)} samples.")  # type: ignore
    return res
