# py_sevt/ctables.py
"""Distribution of observed counts along every prefix of the variable order"""

from typing import Dict, Optional
import numpy as np
import pandas as pd

from .tree import Tree
from .errors import InvalidLevels


def joint_counts(tree: Tree, frame: pd.DataFrame,
                 count_col: Optional[str] = None) -> np.ndarray:
    """
    Full joint count table of the tree variables.

    Args:
        tree: tree giving the variables and their declared levels
        frame: one row per observation, or one row per cell if ``count_col``
        count_col: column holding the cell counts

    Returns:
        Array of shape ``tree.cardinalities``
    """
    missing = [v for v in tree.variables if v not in frame.columns]
    if missing:
        raise InvalidLevels(f"Data has no column for variables {missing}")

    codes = []
    for var in tree.variables:
        values = frame[var].astype(str)
        cat = pd.Categorical(values, categories=tree.levels[var])
        # values outside the declared levels get code -1
        unknown = values[cat.codes < 0]
        if len(unknown) > 0:
            raise InvalidLevels(
                f"Values {sorted(set(unknown))} of {var} are not among its levels "
                f"{tree.levels[var]}"
            )
        codes.append(cat.codes.astype(np.intp))

    if count_col is None:
        weights = np.ones(len(frame), dtype=float)
    else:
        if count_col not in frame.columns:
            raise InvalidLevels(f"Data has no count column {count_col!r}")
        weights = frame[count_col].to_numpy(dtype=float)
        if np.any(weights < 0):
            raise InvalidLevels("Counts must be non-negative")

    joint = np.zeros(tuple(tree.cardinalities), dtype=float)
    np.add.at(joint, tuple(codes), weights)
    return joint


def make_ctables(tree: Tree, joint: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Contingency table of each variable given all the preceding ones.

    The first variable gets its marginal count vector; variable ``i`` gets
    a ``(n_positions, levels)`` array whose row ``r`` is the tree position
    ``r + 1`` of the preceding path.
    """
    joint = np.asarray(joint, dtype=float)
    dims = tuple(tree.cardinalities)
    if joint.shape != dims:
        raise InvalidLevels(f"Joint table has shape {joint.shape}, tree needs {dims}")

    n = len(dims)
    ctables = {}
    for i, var in enumerate(tree.variables):
        # marginalise out every variable after var
        tt = joint.sum(axis=tuple(range(i + 1, n))) if i + 1 < n else joint
        if i == 0:
            ctables[var] = np.asarray(tt, dtype=float).reshape(dims[0])
        else:
            ctables[var] = np.asarray(tt, dtype=float).reshape(-1, dims[i])
    return ctables


def ctable_frame(tree: Tree, var: str, table: np.ndarray) -> pd.DataFrame:
    """Labelled view of a contingency table, preceding paths as a MultiIndex"""
    d = tree.depth(var)
    if d == 0:
        return pd.DataFrame(np.atleast_2d(table), columns=pd.Index(tree.levels[var], name=var))
    index = pd.MultiIndex.from_product(
        [tree.levels[v] for v in tree.variables[:d]],
        names=tree.variables[:d]
    )
    return pd.DataFrame(table, index=index, columns=pd.Index(tree.levels[var], name=var))
