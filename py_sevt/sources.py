# py_sevt/sources.py
"""Input sources: each converts to a Tree plus an optional joint count table"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
import numpy as np
import pandas as pd

from .tree import Tree
from .ctables import joint_counts
from .errors import InvalidLevels


def _column_levels(column: pd.Series) -> List[str]:
    """Levels of a column: declared categories, else sorted distinct values"""
    if isinstance(column.dtype, pd.CategoricalDtype):
        return [str(c) for c in column.cat.categories]
    # sort the raw values so numbers keep numeric order
    return [str(v) for v in sorted(column.dropna().unique())]


def _ordered(names: Sequence[str], order: Optional[Sequence[str]]) -> List[str]:
    if order is None:
        return list(names)
    missing = [v for v in order if v not in names]
    if missing:
        raise InvalidLevels(f"Variables {missing} not found in data")
    return list(order)


@dataclass(frozen=True)
class LevelsSource:
    """Only the levels of each variable, no observations"""
    levels: Dict[str, Sequence]

    def tree(self, order: Optional[Sequence[str]] = None) -> Tree:
        return Tree(dict(self.levels)).subtree(_ordered(list(self.levels), order))

    def joint(self, tree: Tree) -> Optional[np.ndarray]:
        return None


@dataclass(frozen=True)
class RecordsSource:
    """One observation per row, one column per variable"""
    frame: pd.DataFrame

    def tree(self, order: Optional[Sequence[str]] = None) -> Tree:
        variables = _ordered(list(self.frame.columns), order)
        return Tree({v: _column_levels(self.frame[v]) for v in variables})

    def joint(self, tree: Tree) -> Optional[np.ndarray]:
        return joint_counts(tree, self.frame)


@dataclass(frozen=True)
class CountTableSource:
    """One row per cell of the joint table, counts in ``count_col``"""
    frame: pd.DataFrame
    count_col: str = "count"

    @classmethod
    def from_series(cls, counts: pd.Series) -> 'CountTableSource':
        """Count table from a Series indexed by a MultiIndex of variables"""
        if any(name is None for name in counts.index.names):
            raise InvalidLevels("Count table index levels must be named")
        frame = counts.rename("count").reset_index()
        return cls(frame, "count")

    @classmethod
    def from_array(cls, joint: np.ndarray, levels: Dict[str, Sequence]) -> 'CountTableSource':
        """Count table from a joint ndarray whose axes follow ``levels``"""
        tree = Tree(dict(levels))
        joint = np.asarray(joint, dtype=float)
        if joint.shape != tuple(tree.cardinalities):
            raise InvalidLevels(
                f"Joint table has shape {joint.shape}, levels need {tuple(tree.cardinalities)}"
            )
        index = pd.MultiIndex.from_product(list(tree.levels.values()), names=tree.variables)
        frame = pd.DataFrame({"count": joint.reshape(-1)}, index=index).reset_index()
        for var in tree.variables:
            frame[var] = pd.Categorical(frame[var], categories=tree.levels[var])
        return cls(frame, "count")

    def tree(self, order: Optional[Sequence[str]] = None) -> Tree:
        names = [c for c in self.frame.columns if c != self.count_col]
        variables = _ordered(names, order)
        return Tree({v: _column_levels(self.frame[v]) for v in variables})

    def joint(self, tree: Tree) -> Optional[np.ndarray]:
        return joint_counts(tree, self.frame, count_col=self.count_col)


DataSource = Union[LevelsSource, RecordsSource, CountTableSource]


def as_source(x) -> DataSource:
    """Wrap a dict of levels, a DataFrame of records or a Series of counts"""
    if isinstance(x, (LevelsSource, RecordsSource, CountTableSource)):
        return x
    if isinstance(x, pd.Series):
        return CountTableSource.from_series(x)
    if isinstance(x, pd.DataFrame):
        return RecordsSource(x)
    if isinstance(x, dict):
        return LevelsSource(x)
    raise TypeError(f"Cannot build a staged tree from {type(x).__name__}")


def read_source(data_file: Union[str, Path], sep: str = '\t',
                count_col: Optional[str] = None) -> DataSource:
    """Load a delimited data file as records or, with ``count_col``, as a count table"""
    data = pd.read_csv(data_file, sep=sep, dtype=str, keep_default_na=False)
    if count_col is None:
        return RecordsSource(data)
    if count_col not in data.columns:
        raise InvalidLevels(f"{data_file} has no count column {count_col!r}")
    data[count_col] = pd.to_numeric(data[count_col])
    return CountTableSource(data, count_col)
