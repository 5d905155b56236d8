import abc
import itertools
from collections.abc import Sequence

import joblib
import numba as nb
import numpy as np
import scipy.sparse
from Levenshtein import distance as levenshtein_dist
from scanpy import logging
from scipy.sparse import csr_matrix

from repgraph.util import InvalidArgumentError, _doc_params, _get_usable_cpus, _parallelize_with_joblib

_doc_params_parallel_distance_calculator = """\
n_jobs
    Number of jobs to use for the pairwise distance calculation, passed to
    :class:`joblib.Parallel`. If -1, use all CPUs.
    Via the :class:`joblib.parallel_config` context manager, another backend (e.g. `dask`)
    can be selected.
"""


_doc_dist_mat = """\
Calculates the full pairwise distance matrix.

.. important::
  * Distances are offset by 1 to allow efficient use of sparse matrices
    (:math:`d' = d+1`).
  * That means, a `distance > cutoff` is represented as `0`, a `distance == 0`
    is represented as `1`, a `distance == 1` is represented as `2` and so on.
  * Only returns distances `<= cutoff`. Larger distances are eliminated
    from the sparse matrix.
  * Distances are non-negative.

"""


class DistanceCalculator(abc.ABC):
    """\
    Abstract base class for a sequence distance calculator.

    Parameters
    ----------
    cutoff:
        Distances > cutoff will be eliminated to make efficient use of sparse matrices.

    """

    #: The sparse matrix dtype. Defaults to uint8, constraining the max distance to 254 (255 with the offset).
    DTYPE = "uint8"

    def __init__(self, cutoff: int):
        if isinstance(cutoff, bool) or not isinstance(cutoff, int | np.integer):
            raise InvalidArgumentError(f"The cutoff must be an integer, got {cutoff!r}")
        if cutoff < 0:
            raise InvalidArgumentError("The cutoff must be non-negative.")
        if cutoff >= 255:
            raise InvalidArgumentError("Using a cutoff > 254 is not possible due to the `uint8` dtype used")
        self.cutoff = int(cutoff)

    @_doc_params(dist_mat=_doc_dist_mat)
    @abc.abstractmethod
    def calc_dist_mat(self, seqs: Sequence[str], seqs2: Sequence[str] | None = None) -> csr_matrix:
        """\
        Calculate pairwise distance matrix of all sequences in `seqs` and `seqs2`.

        When `seqs2` is omitted, computes the pairwise distance of `seqs` against
        itself.

        {dist_mat}

        Parameters
        ----------
        seqs
            array containing sequences. May contain duplicates.
        seqs2
            second array containing sequences.

        Returns
        -------
        Sparse pairwise distance matrix.
        """

    @staticmethod
    def squarify(triangular_matrix: csr_matrix) -> csr_matrix:
        """Mirror a triangular matrix at the diagonal to make it a square matrix.

        The input matrix *must* be upper triangular to begin with, otherwise
        the results will be incorrect. No guard rails!
        """
        assert triangular_matrix.shape[0] == triangular_matrix.shape[1], "needs to be square matrix"
        # The matrix is already upper diagonal. Use the transpose method, see
        # https://stackoverflow.com/a/58806735/2340703.
        return triangular_matrix + triangular_matrix.T - scipy.sparse.diags(
            triangular_matrix.diagonal(), dtype=triangular_matrix.dtype
        )


@_doc_params(params=_doc_params_parallel_distance_calculator)
class ParallelDistanceCalculator(DistanceCalculator):
    """
    Abstract base class for a DistanceCalculator that computes distances in parallel.

    It does so in a blockwise fashion. The function computing distances
    for a single block needs to be overriden.

    Parameters
    ----------
    {params}
    """

    def __init__(self, cutoff: int, *, n_jobs: int = -1):
        super().__init__(cutoff)
        self.n_jobs = n_jobs

    @abc.abstractmethod
    def _compute_block(
        self,
        seqs1: Sequence[str],
        seqs2: Sequence[str] | None,
        origin: tuple[int, int],
    ) -> list[tuple[int, int, int]]:
        """Compute the distances for a block of the matrix

        Parameters
        ----------
        seqs1
            array containing sequences
        seqs2
            other array containing sequences. If `None` compute the square matrix
            of `seqs1` and iterator over the upper triangle including the diagonal only.
        origin
            row, col coordinates of the origin of the block.

        Returns
        -------
        List of (distance, row, col) tuples for all elements with distance != 0.
        row, col must be the coordinates in the final matrix (they can be derived using
        `origin`). Can't be a generator because this needs to be picklable.
        """

    @staticmethod
    def _block_iter(
        seqs1: Sequence[str],
        seqs2: Sequence[str] | None = None,
        block_size: int = 50,
    ):
        """Iterate over sequences in blocks.

        Parameters
        ----------
        seqs1
            array containing sequences
        seqs2
            array containing other sequences. If `None` compute
            the square matrix of `seqs1` and iterate over the upper triangle (including
            the diagonal) only.
        block_size
            side length of a block (will have `block_size ** 2` elements.)

        Yields
        ------
        seqs1
            subset of length `block_size` of seqs1
        seqs2
            subset of length `block_size` of seqs2. If seqs2 is None, this will
            be `None` if the block is on the diagonal, or a subset of seqs1 otherwise.
        origin
            (row, col) coordinates of the origin of the block.
        """
        square_mat = seqs2 is None
        if square_mat:
            seqs2 = seqs1
        for row in range(0, len(seqs1), block_size):
            start_col = row if square_mat else 0
            for col in range(start_col, len(seqs2), block_size):
                if row == col and square_mat:
                    # block on the diagonal.
                    # yield None for seqs2 to indicate that we only want the upper
                    # diagonal.
                    yield seqs1[row : row + block_size], None, (row, row)
                else:
                    yield seqs1[row : row + block_size], seqs2[col : col + block_size], (row, col)

    def calc_dist_mat(
        self, seqs: Sequence[str], seqs2: Sequence[str] | None = None, *, block_size: int | None = None
    ) -> csr_matrix:
        """Calculate the distance matrix.

        See :meth:`DistanceCalculator.calc_dist_mat`.

        Parameters
        ----------
        seqs
            array containing sequences.
        seqs2
            second array containing sequences.
        block_size
            The width of a block that's sent to a worker. A block contains
            `block_size ** 2` elements. If `None` the block
            size is determined automatically based on the problem size.

        Returns
        -------
        Sparse pairwise distance matrix.
        """
        seqs = list(seqs)
        seqs2 = list(seqs2) if seqs2 is not None else None
        shape = (len(seqs), len(seqs2)) if seqs2 is not None else (len(seqs), len(seqs))
        if shape[0] == 0 or shape[1] == 0:
            return csr_matrix(shape, dtype=self.DTYPE)

        if block_size is None:
            problem_size = shape[0] * shape[1]
            # dynamically adjust the block size such that there are ~1000 blocks within a range of 50 and 5000
            block_size = int(np.ceil(min(max(np.sqrt(problem_size / 1000), 50), 5000)))
        logging.info(f"block size set to {block_size}")

        # precompute blocks as list to have total number of blocks for progressbar
        blocks = list(self._block_iter(seqs, seqs2, block_size=block_size))

        block_results = _parallelize_with_joblib(
            (joblib.delayed(self._compute_block)(*block) for block in blocks),
            total=len(blocks),
            n_jobs=_get_usable_cpus(self.n_jobs) if len(blocks) > 1 else 1,
        )

        try:
            dists, rows, cols = zip(*itertools.chain(*block_results), strict=True)
        except ValueError:
            # happens when there is no match at all
            dists, rows, cols = (), (), ()

        score_mat = scipy.sparse.coo_matrix((dists, (rows, cols)), dtype=self.DTYPE, shape=shape)
        score_mat.eliminate_zeros()
        score_mat = score_mat.tocsr()

        if seqs2 is None:
            score_mat = self.squarify(score_mat)

        return score_mat


@_doc_params(params=_doc_params_parallel_distance_calculator)
class LevenshteinDistanceCalculator(ParallelDistanceCalculator):
    """\
    Calculates the Levenshtein edit-distance between sequences.

    The edit distance is the total number of deletion, addition and modification
    events.

    This class relies on `Python-levenshtein <https://github.com/rapidfuzz/Levenshtein>`_
    to calculate the distances. Pairs whose lengths differ by more than the cutoff
    are skipped, as their edit distance can't be within the cutoff.

    Parameters
    ----------
    cutoff
        Will eleminate distances > cutoff to make efficient
        use of sparse matrices. The default cutoff is `1`.
    {params}
    """

    def __init__(self, cutoff: int = 1, **kwargs):
        super().__init__(cutoff, **kwargs)

    def _compute_block(self, seqs1, seqs2, origin):
        origin_row, origin_col = origin
        if seqs2 is not None:
            # compute the full matrix
            coord_iterator = itertools.product(enumerate(seqs1), enumerate(seqs2))
        else:
            # compute only upper triangle in this case
            coord_iterator = itertools.combinations_with_replacement(enumerate(seqs1), r=2)

        result = []
        for (row, s1), (col, s2) in coord_iterator:
            if abs(len(s1) - len(s2)) > self.cutoff:
                continue
            d = levenshtein_dist(s1, s2, score_cutoff=self.cutoff)
            if d <= self.cutoff:
                result.append((d + 1, origin_row + row, origin_col + col))

        return result


def _seqs2mat(seqs: Sequence[str], alphabet: str, max_len: int | None = None) -> tuple[np.ndarray, np.ndarray]:
    """Convert a collection of sequences into a
    numpy matrix of integers for fast comparison.

    Parameters
    ----------
    seqs:
        Sequence of strings
    alphabet:
        All characters that may occur in `seqs`. A character is encoded
        by its position in the alphabet.

    Returns
    -------
    mat:
        matrix with sequences encoded as integers
    L:
        vector with length values of the sequences in the matrix

    Notes
    -----
    Requires all seqs to have the same length, therefore shorter sequences
    are filled up with -1 entries at the end.
    """
    if max_len is None:
        max_len = max((len(s) for s in seqs), default=0)
    lookup = {c: i for i, c in enumerate(alphabet)}
    mat = -1 * np.ones((len(seqs), max_len), dtype=np.int32)
    L = np.zeros(len(seqs), dtype=np.int32)
    for si, s in enumerate(seqs):
        L[si] = len(s)
        for aai, aa in enumerate(s):
            mat[si, aai] = lookup[aa]
    return mat, L


@nb.njit(nogil=True)
def _nb_hamming_block(seqs_mat1, seqs_L1, seqs_mat2, seqs_L2, cutoff, upper_triangle):
    """Hamming distances of all equal-length pairs of a block that are `<= cutoff`.

    Runs twice over the block: the first pass counts the hits so that the result
    arrays can be allocated, the second pass fills them. If `upper_triangle` is
    True, `seqs_mat2` is ignored and only column indices `>= row` of `seqs_mat1`
    against itself are visited.
    """
    num_rows = seqs_mat1.shape[0]
    num_cols = seqs_mat2.shape[0]
    n_hits = 0
    rows = np.empty(0, dtype=np.int64)
    cols = np.empty(0, dtype=np.int64)
    dists = np.empty(0, dtype=np.int64)
    for fill in range(2):
        if fill == 1:
            rows = np.empty(n_hits, dtype=np.int64)
            cols = np.empty(n_hits, dtype=np.int64)
            dists = np.empty(n_hits, dtype=np.int64)
            n_hits = 0
        for row_index in range(num_rows):
            seq1_len = seqs_L1[row_index]
            start_col = row_index if upper_triangle else 0
            for col_index in range(start_col, num_cols):
                if seqs_L2[col_index] != seq1_len:
                    continue
                distance = 0
                for i in range(seq1_len):
                    if seqs_mat1[row_index, i] != seqs_mat2[col_index, i]:
                        distance += 1
                        if distance > cutoff:
                            break
                if distance <= cutoff:
                    if fill == 1:
                        rows[n_hits] = row_index
                        cols[n_hits] = col_index
                        dists[n_hits] = distance
                    n_hits += 1
    return rows, cols, dists


@_doc_params(params=_doc_params_parallel_distance_calculator)
class HammingDistanceCalculator(ParallelDistanceCalculator):
    """\
    Calculates the Hamming distance between sequences of identical length.

    The hamming distance is defined as the number of mismatching positions
    between two sequences of the same length. Sequences of different
    lengths are never within the cutoff.

    Each block is integer-encoded and compared in a `numba`-compiled kernel.

    Parameters
    ----------
    cutoff
        Will eleminate distances > cutoff to make efficient
        use of sparse matrices. The default cutoff is `1`.
    {params}
    """

    def __init__(self, cutoff: int = 1, **kwargs):
        super().__init__(cutoff, **kwargs)

    def _compute_block(self, seqs1, seqs2, origin):
        origin_row, origin_col = origin
        upper_triangle = seqs2 is None
        if upper_triangle:
            seqs2 = seqs1

        alphabet = "".join(sorted({char for string in (*seqs1, *seqs2) for char in string}))
        max_len = max(len(s) for s in (*seqs1, *seqs2))
        seqs_mat1, seqs_L1 = _seqs2mat(seqs1, alphabet=alphabet, max_len=max_len)
        seqs_mat2, seqs_L2 = _seqs2mat(seqs2, alphabet=alphabet, max_len=max_len)

        rows, cols, dists = _nb_hamming_block(seqs_mat1, seqs_L1, seqs_mat2, seqs_L2, self.cutoff, upper_triangle)

        return [
            (int(d) + 1, origin_row + int(r), origin_col + int(c))
            for d, r, c in zip(dists, rows, cols, strict=True)
        ]
