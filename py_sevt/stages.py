# py_sevt/stages.py
"""Stage vectors: one stage label per tree position at a given depth"""

from typing import Iterable, List, Optional, Sequence

from .errors import BadStageAssignment


def new_label(labels: Iterable[str]) -> str:
    """Smallest positive integer label not in ``labels``"""
    labels = set(str(l) for l in labels)
    k = 1
    while str(k) in labels:
        k += 1
    return str(k)


def unique_labels(labels: Sequence[str]) -> List[str]:
    """Distinct labels in order of first appearance"""
    return list(dict.fromkeys(labels))


def check_length(labels: Sequence[str], n: int) -> None:
    """Stage vector length must divide the number of positions"""
    if len(labels) == 0 or n % len(labels) != 0:
        raise BadStageAssignment(
            f"Stage vector of length {len(labels)} does not divide {n} positions"
        )


def stage_of(labels: Sequence[str], position: int) -> str:
    """Stage of a 1-based position; short vectors are reused cyclically"""
    if position < 1:
        raise BadStageAssignment(f"Invalid position {position}")
    return labels[(position - 1) % len(labels)]


def expand(labels: Sequence[str], n: int) -> List[str]:
    """Full-length stage vector over ``n`` positions"""
    check_length(labels, n)
    return [labels[i % len(labels)] for i in range(n)]


def merge(labels: Sequence[str], a: str, b: str) -> List[str]:
    """
    Join stage ``b`` into stage ``a``.

    Args:
        labels: stage vector
        a: label that is kept
        b: label that disappears

    Returns:
        New stage vector
    """
    present = set(labels)
    for s in (a, b):
        if s not in present:
            raise BadStageAssignment(f"Stage {s!r} not in stage vector")
    if a == b:
        return list(labels)
    return [a if s == b else s for s in labels]


def split(labels: Sequence[str], positions: Iterable[int], n: int,
          label: Optional[str] = None) -> List[str]:
    """
    Move 1-based ``positions`` into ``label`` (a fresh label by default).

    The vector is expanded to all ``n`` positions first, so compact
    vectors can be split.
    """
    full = expand(labels, n)
    if label is None:
        label = new_label(full)
    for p in positions:
        if not 1 <= p <= n:
            raise BadStageAssignment(f"Position {p} outside 1..{n}")
        full[p - 1] = label
    return full
