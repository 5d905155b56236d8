from collections.abc import Sequence

import igraph as ig
import numpy as np
import pandas as pd

from repgraph.util import InvalidArgumentError, _doc_params, _doc_paste

__all__ = ["decode_code", "group_names", "people_names", "vertex_table"]


@_doc_params(paste=_doc_paste)
def decode_code(code: str, names: Sequence[str], paste: bool = True) -> str | list[str]:
    """\
    Get the names that are switched on in a binary string.

    Parameters
    ----------
    code
        String of `'0'` and `'1'` characters with the same length as `names`.
    names
        Ordered names. Character `i` of `code` refers to `names[i]`.
    {paste}

    Returns
    -------
    The names at the `'1'` positions of `code`, in the order of `names`.
    Either joined by `|` (an empty string if there is none) or as list.
    """
    if len(code) != len(names):
        raise InvalidArgumentError(f"Binary string of length {len(code)} doesn't match {len(names)} names.")
    selected = [name for bit, name in zip(code, names, strict=True) if bit == "1"]
    return "|".join(selected) if paste else selected


def _check_vertex(g: ig.Graph, v) -> int:
    if not 0 <= v < g.vcount():
        raise InvalidArgumentError(f"Vertex index {v} is out of range for a graph with {g.vcount()} vertices.")
    return int(v)


def _decode_attribute(g: ig.Graph, attr_name: str, vertices, paste: bool):
    if attr_name not in g.attributes():
        raise InvalidArgumentError(f"Graph has no attribute '{attr_name}'.")
    if attr_name not in g.vs.attributes():
        raise InvalidArgumentError(f"Graph has no vertex attribute '{attr_name}'.")
    names = g[attr_name]

    if vertices is None:
        codes = g.vs[attr_name]
    elif isinstance(vertices, int | np.integer):
        return decode_code(g.vs[_check_vertex(g, vertices)][attr_name], names, paste)
    else:
        codes = [g.vs[_check_vertex(g, v)][attr_name] for v in vertices]

    return [decode_code(code, names, paste) for code in codes]


_doc_vertices = """\
vertices
    Vertex index or sequence of vertex indices. If `None`, use all vertices.
"""


@_doc_params(vertices=_doc_vertices, paste=_doc_paste)
def people_names(g: ig.Graph, vertices: int | Sequence[int] | None = None, paste: bool = True):
    """\
    Get the names of the samples that contain the sequences of vertices.

    Parameters
    ----------
    g
        Repertoire graph annotated by :func:`repgraph.tl.set_people_vector`.
    {vertices}
    {paste}

    Returns
    -------
    If `vertices` is a single index, the sample names of that vertex. Otherwise
    a list with the sample names for each vertex.

    Examples
    --------
    >>> repgraph.get.people_names(g, 300)
    'Subj.A|Subj.B'
    >>> repgraph.get.people_names(g, [300], paste=False)
    [['Subj.A', 'Subj.B']]
    """
    return _decode_attribute(g, "people", vertices, paste)


@_doc_params(vertices=_doc_vertices, paste=_doc_paste)
def group_names(g: ig.Graph, attr_name: str, vertices: int | Sequence[int] | None = None, paste: bool = True):
    """\
    Get the names of the groups that contain the sequences of vertices.

    Parameters
    ----------
    g
        Repertoire graph annotated by :func:`repgraph.tl.set_group_vector`.
    attr_name
        Name of the group attribute.
    {vertices}
    {paste}

    Returns
    -------
    If `vertices` is a single index, the group names of that vertex. Otherwise
    a list with the group names for each vertex.
    """
    return _decode_attribute(g, attr_name, vertices, paste)


def vertex_table(g: ig.Graph) -> pd.DataFrame:
    """Get all vertex attributes of a graph as a DataFrame, indexed by vertex id."""
    return pd.DataFrame({attr: g.vs[attr] for attr in g.vs.attributes()}, index=pd.RangeIndex(g.vcount()))
