from collections.abc import Iterable

import igraph as ig
import numpy as np
from scanpy import logging
from scipy.sparse import csr_matrix, spmatrix, triu

from repgraph.util import InvalidArgumentError


def igraph_from_pairs(n_vertices: int, pairs: Iterable[tuple[int, int]], *, simplify: bool = True) -> ig.Graph:
    """
    Get an undirected igraph object with `n_vertices` vertices from a collection of index pairs.

    Parameters
    ----------
    n_vertices
        Number of vertices. Vertex `i` corresponds to the `i`-th input row.
    pairs
        Unordered pairs of 0-based vertex indices. Each pair becomes an edge.
    simplify
        Remove circular edges (i.e. edges from a node to itself) and
        collapse multiple edges between the same two nodes.

    Returns
    -------
    igraph object
    """
    edges = np.array(sorted({tuple(p) for p in pairs}), dtype=np.int64).reshape(-1, 2)
    if edges.size and (edges.min() < 0 or edges.max() >= n_vertices):
        raise InvalidArgumentError(f"Pair indices must be between 0 and {n_vertices - 1}.")

    g = ig.Graph(n=n_vertices, directed=False)
    g.add_edges(edges.tolist())

    if simplify:
        # (i, j) and (j, i) are the same undirected edge and collapse here as well.
        n_edges = g.ecount()
        g.simplify(multiple=True, loops=True)
        if g.ecount() != n_edges:
            logging.hint(f"Removed {n_edges - g.ecount()} circular or duplicate edges.")  # type: ignore

    return g


def pairs_from_sparse_matrix(matrix: spmatrix) -> set[tuple[int, int]]:
    """
    Get the set of unordered index pairs with a non-zero entry in a square sparse matrix.

    Only the strict upper triangle is read, i.e. the diagonal is ignored and
    the matrix is expected to be symmetric.
    """
    if matrix.shape[0] != matrix.shape[1]:
        raise InvalidArgumentError("Need a square matrix to extract pairs.")
    upper = csr_matrix(triu(matrix, k=1))
    upper.eliminate_zeros()
    rows, cols = upper.nonzero()
    return {(int(i), int(j)) for i, j in zip(rows, cols, strict=True)}
