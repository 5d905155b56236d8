import itertools
from collections.abc import Callable, Sequence


def _hamming(s1: str, s2: str) -> int | None:
    """Reference hamming distance. `None` for sequences of different length."""
    if len(s1) != len(s2):
        return None
    return sum(c1 != c2 for c1, c2 in zip(s1, s2, strict=True))


def _levenshtein(s1: str, s2: str) -> int:
    """Reference edit distance (dynamic programming, unit costs)"""
    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        cur = [i]
        for j, c2 in enumerate(s2, start=1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (c1 != c2)))
        prev = cur
    return prev[-1]


def _brute_force_pairs(
    seqs: Sequence[str], dist_fn: Callable[[str, str], int | None], max_errors: int
) -> set[tuple[int, int]]:
    """Compare all pairs of sequences exhaustively"""
    pairs = set()
    for (i, s1), (j, s2) in itertools.combinations(enumerate(seqs), 2):
        d = dist_fn(s1, s2)
        if d is not None and d <= max_errors:
            pairs.add((i, j))
    return pairs
