# py_sevt/distance.py
"""
Distances between probability vectors, used to compare stages.

All functions take two vectors over the same support. Positions where
both vectors are zero are dropped before any log or ratio is taken; a
position where exactly one of them is zero makes the divergences
(Kullback-Leibler, Renyi, Chan-Darwiche) infinite.
"""

from typing import Callable, Dict, List, Mapping, Tuple, Union
import numpy as np
import pandas as pd
from scipy.special import rel_entr

from .errors import DegenerateDistance

Distance = Callable[[np.ndarray, np.ndarray], float]


def _pair(x, y) -> Tuple[np.ndarray, np.ndarray]:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape or x.ndim != 1:
        raise DegenerateDistance(f"Vectors of shape {x.shape} and {y.shape} differ in support")
    return x, y


def _support(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Drop positions where both vectors are zero"""
    keep = ~((x == 0) & (y == 0))
    return x[keep], y[keep]


def l1(x, y) -> float:
    x, y = _pair(x, y)
    return float(np.sum(np.abs(x - y)))


def l2(x, y) -> float:
    x, y = _pair(x, y)
    return float(np.sqrt(np.sum((x - y) ** 2)))


def total_variation(x, y) -> float:
    """Total variation, computed as the L1 norm"""
    x, y = _pair(x, y)
    return float(np.sum(np.abs(x - y)))


def kullback_leibler(x, y) -> float:
    """Symmetrized Kullback-Leibler divergence"""
    x, y = _support(*_pair(x, y))
    return float(np.sum(rel_entr(x, y)) + np.sum(rel_entr(y, x)))


def renyi(x, y, alpha: float = 2.0) -> float:
    """Symmetrized Renyi divergence, order 2 by default"""
    x, y = _support(*_pair(x, y))
    with np.errstate(divide='ignore', invalid='ignore'):
        a = np.sum(x ** alpha / y ** (alpha - 1))
        b = np.sum(y ** alpha / x ** (alpha - 1))
        return float((np.log(a) + np.log(b)) / (alpha - 1))


def hellinger(x, y) -> float:
    """Squared Hellinger distance"""
    x, y = _pair(x, y)
    return float(np.sum((np.sqrt(x) - np.sqrt(y)) ** 2))


def bhattacharyya(x, y) -> float:
    """Bhattacharyya distance; infinite for disjoint supports"""
    x, y = _pair(x, y)
    bc = np.sum(np.sqrt(x * y))
    if bc <= 0:
        return float('inf')
    # clip rounding below zero when x == y
    return float(max(-np.log(bc), 0.0))


def chan_darwiche(x, y) -> float:
    """Chan-Darwiche distance: range of the log ratios"""
    x, y = _support(*_pair(x, y))
    if x.size == 0:
        return 0.0
    with np.errstate(divide='ignore', invalid='ignore'):
        r = x / y
        return float(np.log(np.max(r)) - np.log(np.min(r)))


DISTANCES: Dict[str, Distance] = {
    'l1': l1,
    'l2': l2,
    'kl': kullback_leibler,
    'kullback_leibler': kullback_leibler,
    'ry': renyi,
    'renyi': renyi,
    'tv': total_variation,
    'total_variation': total_variation,
    'hl': hellinger,
    'hellinger': hellinger,
    'bh': bhattacharyya,
    'bhattacharyya': bhattacharyya,
    'cd': chan_darwiche,
    'chan_darwiche': chan_darwiche,
}


def get_distance(value: Union[str, Distance]) -> Distance:
    """Resolve a distance name or callable"""
    if callable(value):
        return value
    try:
        return DISTANCES[value]
    except KeyError:
        raise ValueError(f"Unknown distance {value!r}, expected one of {sorted(DISTANCES)}")


def distance_matrix(probs: Mapping[str, np.ndarray],
                    distance: Union[str, Distance] = kullback_leibler) -> pd.DataFrame:
    """
    Symmetric matrix of distances between stage probabilities.

    Only the lower triangle is computed; the diagonal is zero and the
    upper triangle mirrors it.

    Args:
        probs: stage label -> probability vector
        distance: distance function or its name

    Returns:
        DataFrame indexed and labelled by stage
    """
    distance = get_distance(distance)
    labels = list(probs)
    d = len(labels)
    M = np.zeros((d, d))
    for i in range(d):
        for j in range(i):
            M[i, j] = distance(probs[labels[i]], probs[labels[j]])
            M[j, i] = M[i, j]
    return pd.DataFrame(M, index=labels, columns=labels)


def simple_clustering(M: pd.DataFrame) -> Tuple[List[str], List[str]]:
    """
    Split the labels of a distance matrix in two clusters.

    The clusters are seeded by the two labels at maximum distance (the
    first maximum scanning the lower triangle column by column); every
    other label joins the first seed only if strictly closer to it,
    ties go to the second.
    """
    names = list(M.columns)
    d = len(names)
    if d < 2:
        raise DegenerateDistance("Need at least two stages to cluster")
    values = M.to_numpy(dtype=float)

    best = None
    i = j = 0
    for col in range(d):
        for row in range(col + 1, d):
            if best is None or values[row, col] > best:
                best = values[row, col]
                i, j = col, row

    I = [names[i]]
    J = [names[j]]
    for k in range(d):
        if k in (i, j):
            continue
        if values[k, i] < values[k, j]:
            I.append(names[k])
        else:
            J.append(names[k])
    return I, J
