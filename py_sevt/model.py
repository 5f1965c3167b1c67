# py_sevt/model.py
"""Staged event tree model: stages, attached counts and stage probabilities"""

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd
from scipy.special import xlogy

from .tree import Tree
from .ctables import make_ctables, ctable_frame
from .sources import DataSource, as_source
from . import stages as st
from .errors import BadStageAssignment, MissingData, UnfittedModel

UNOBSERVED = "UNOBSERVED"

# stage label of the first variable, which has a single situation
ROOT_STAGE = "1"


def estimate_stages(table: np.ndarray, labels: Sequence[str],
                    lam: float = 0.0) -> Tuple[Dict[str, np.ndarray], Dict[str, np.ndarray], float]:
    """
    Stage probabilities and log-likelihood of one variable.

    Args:
        table: ``(n_positions, levels)`` counts
        labels: stage vector (reused cyclically over the positions)
        lam: additive smoothing added to every count

    Returns:
        Tuple of (counts per stage, probabilities per stage, log-likelihood)
    """
    table = np.atleast_2d(table)
    n, k = table.shape
    full = np.asarray(st.expand(labels, n), dtype=object)

    counts = {}
    prob = {}
    ll = 0.0
    for s in st.unique_labels(full):
        tt = table[full == s].sum(axis=0)
        total = tt.sum()
        if total == 0 and lam == 0:
            # nothing observed and nothing to smooth with
            p = np.full(k, 1.0 / k)
        else:
            p = (tt + lam) / (total + lam * k)
        counts[s] = tt
        prob[s] = p
        # smoothing changes the probabilities, never the weights
        ll += float(xlogy(tt, p).sum())
    return counts, prob, ll


@dataclass
class StagedTree:
    """
    Staged event tree over the variables of ``tree``.

    ``stages`` holds one stage vector for every variable but the first;
    a vector shorter than the number of positions is reused cyclically.
    ``ctables`` and ``prob`` are only present once data is attached and
    the model fitted, and are replaced wholesale on every refit.
    """
    tree: Tree
    stages: Dict[str, List[str]] = field(default_factory=dict)
    ctables: Optional[Dict[str, np.ndarray]] = None
    prob: Optional[Dict[str, Dict[str, np.ndarray]]] = None
    lam: float = 0.0
    name_unobserved: Optional[str] = UNOBSERVED
    _ll: Dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        """Validate stage vectors against the tree"""
        if self.lam < 0:
            raise ValueError(f"Smoothing parameter must be >= 0, got {self.lam}")
        unknown = [v for v in self.stages if v not in self.tree.levels]
        if unknown:
            raise BadStageAssignment(f"Stages given for unknown variables {unknown}")
        first = self.tree.variables[0]
        if first in self.stages:
            raise BadStageAssignment(f"First variable {first} cannot have stages")
        for var in self.tree.variables[1:]:
            if var not in self.stages:
                raise BadStageAssignment(f"Missing stage vector for {var}")
            self.stages[var] = [str(s) for s in self.stages[var]]
            st.check_length(self.stages[var], self.tree.n_positions(var))

    @classmethod
    def from_tree(cls, tree: Tree, full: bool = False, **kwargs) -> 'StagedTree':
        """
        Independence model (one stage per variable) or, with ``full``,
        saturated model (one stage per position).
        """
        stages = {}
        for var in tree.variables[1:]:
            n = tree.n_positions(var)
            if full:
                stages[var] = [str(i) for i in range(1, n + 1)]
            else:
                stages[var] = ["1"]
        return cls(tree, stages, **kwargs)

    @property
    def variables(self) -> List[str]:
        return self.tree.variables

    # -- stage table ---------------------------------------------------------

    def stage_of(self, var: str, position: Union[int, Sequence]) -> str:
        """Stage of a 1-based position, or of the path of preceding levels"""
        if var not in self.tree.levels:
            raise BadStageAssignment(f"Unknown variable {var}")
        if var == self.variables[0]:
            return ROOT_STAGE
        if not isinstance(position, (int, np.integer)):
            path = list(position)
            if len(path) != self.tree.depth(var):
                raise BadStageAssignment(f"Path {path} does not end at the depth of {var}")
            position = self.tree.index(path)
        n = self.tree.n_positions(var)
        if not 1 <= position <= n:
            raise BadStageAssignment(f"Position {position} outside 1..{n} for {var}")
        return st.stage_of(self._stage_vector(var), position)

    def stage_labels(self, var: str) -> List[str]:
        """Distinct stages of a variable in order of first appearance"""
        if var == self.variables[0]:
            return [ROOT_STAGE]
        return st.unique_labels(self._stage_vector(var))

    def n_stages(self, var: str) -> int:
        return len(self.stage_labels(var))

    def set_stages(self, var: str, labels: Sequence[str]) -> None:
        """Replace the stage vector of ``var`` and refit that variable"""
        vector = self._stage_vector(var)
        labels = [str(s) for s in labels]
        st.check_length(labels, self.tree.n_positions(var))
        if labels == vector:
            return
        self.stages[var] = labels
        self._refresh(var)

    def merge_stages(self, var: str, a: str, b: str) -> None:
        """Join stage ``b`` of ``var`` into stage ``a``"""
        self.set_stages(var, st.merge(self._stage_vector(var), a, b))

    def split_stage(self, var: str, positions: Sequence[int],
                    label: Optional[str] = None) -> str:
        """Move ``positions`` of ``var`` to a new (or given) stage, returns its label"""
        vector = self._stage_vector(var)
        if label is None:
            label = st.new_label(vector)
        self.set_stages(var, st.split(vector, positions, self.tree.n_positions(var), label))
        return label

    def snapshot(self, var: str) -> Tuple:
        """State of one variable, to be put back with ``restore``"""
        prob = self.prob.get(var) if self.prob is not None else None
        return list(self._stage_vector(var)), prob, self._ll.get(var)

    def restore(self, var: str, state: Tuple) -> None:
        labels, prob, ll = state
        self.stages[var] = labels
        if self.prob is not None and prob is not None:
            self.prob[var] = prob
        self._ll.pop(var, None)
        if ll is not None:
            self._ll[var] = ll

    def expand_stages(self) -> None:
        """Store every stage vector at full length"""
        for var in self.variables[1:]:
            self.stages[var] = st.expand(self.stages[var], self.tree.n_positions(var))

    def _stage_vector(self, var: str) -> List[str]:
        if var not in self.stages:
            raise BadStageAssignment(f"Variable {var} has no stage vector")
        return self.stages[var]

    # -- data and estimation -------------------------------------------------

    def has_ctables(self) -> bool:
        return self.ctables is not None

    def is_fitted(self) -> bool:
        return self.ctables is not None and self.prob is not None

    def attach(self, data) -> None:
        """Distribute the counts of ``data`` along the tree"""
        source = as_source(data)
        # data columns are matched against this model's own levels
        joint = source.joint(self.tree)
        if joint is None:
            raise MissingData("Source carries levels only, no observations")
        self.ctables = make_ctables(self.tree, joint)
        self.prob = None
        self._ll = {}
        name = self.name_unobserved
        if name is not None and any(name in v for v in self.stages.values()):
            # the unobserved stage follows the new counts
            _join_unobserved(self, name)

    def fit(self, data=None, lam: Optional[float] = None,
            scope: Optional[Sequence[str]] = None) -> 'StagedTree':
        """
        Estimate stage probabilities, attaching ``data`` first if given.

        Args:
            data: any input accepted by ``as_source``; keeps the attached
                counts when omitted
            lam: smoothing parameter, keeps the current one when omitted
            scope: variables to re-estimate, all of them by default

        Returns:
            The model itself
        """
        if data is not None:
            self.attach(data)
        if self.ctables is None:
            raise MissingData("No data attached, pass data to fit()")
        if lam is not None:
            if lam < 0:
                raise ValueError(f"Smoothing parameter must be >= 0, got {lam}")
            if lam != self.lam:
                self.lam = lam
                scope = None

        if scope is None or self.prob is None:
            scope = self.variables
            self.prob = {}
        for var in scope:
            self._estimate(var)
        return self

    def _estimate(self, var: str) -> None:
        labels = [ROOT_STAGE] if var == self.variables[0] else self._stage_vector(var)
        _, prob, ll = estimate_stages(self.ctables[var], labels, self.lam)
        self.prob[var] = prob
        self._ll[var] = ll

    def _refresh(self, var: str) -> None:
        """Invalidate and, for a fitted model, re-estimate one variable"""
        self._ll.pop(var, None)
        if self.is_fitted():
            self._estimate(var)

    # -- likelihood and statistics -------------------------------------------

    def _check_fitted(self) -> None:
        if self.ctables is None:
            raise UnfittedModel("Model has no data attached")
        if self.prob is None:
            raise UnfittedModel("Model has no probabilities, call fit() first")

    def loglik(self) -> float:
        """Log-likelihood of the attached counts under the fitted probabilities"""
        self._check_fitted()
        total = 0.0
        for var in self.variables:
            if var not in self._ll:
                self._ll[var] = self._variable_loglik(var)
            total += self._ll[var]
        return total

    def _variable_loglik(self, var: str) -> float:
        table = np.atleast_2d(self.ctables[var])
        labels = [ROOT_STAGE] if var == self.variables[0] else self._stage_vector(var)
        full = st.expand(labels, table.shape[0])
        ll = 0.0
        for row, s in zip(table, full):
            ll += float(xlogy(row, self.prob[var][s]).sum())
        return ll

    def clear_loglik(self) -> None:
        """Drop cached log-likelihood values"""
        self._ll = {}

    def df(self) -> int:
        """Number of free parameters, the unobserved stage excluded"""
        df = self.tree.dims(self.variables[0]) - 1
        for var in self.variables[1:]:
            labels = [s for s in self.stage_labels(var) if s != self.name_unobserved]
            df += len(labels) * (self.tree.dims(var) - 1)
        return df

    def n_obs(self) -> float:
        if self.ctables is None:
            raise MissingData("No data attached")
        return float(self.ctables[self.variables[0]].sum())

    def aic(self) -> float:
        return -2.0 * self.loglik() + 2.0 * self.df()

    def bic(self) -> float:
        return -2.0 * self.loglik() + np.log(self.n_obs()) * self.df()

    # -- inspection ----------------------------------------------------------

    def stage_counts(self, var: str) -> Dict[str, np.ndarray]:
        """Observed counts aggregated by stage"""
        if self.ctables is None:
            raise MissingData("No data attached")
        labels = [ROOT_STAGE] if var == self.variables[0] else self._stage_vector(var)
        counts, _, _ = estimate_stages(self.ctables[var], labels, self.lam)
        return counts

    def stage_probs(self, var: str) -> Dict[str, np.ndarray]:
        self._check_fitted()
        return self.prob[var]

    def expand_prob(self) -> Dict[str, pd.DataFrame]:
        """Conditional probability table of every variable, one row per position"""
        self._check_fitted()
        tables = {}
        for var in self.variables:
            n = self.tree.n_positions(var)
            if var == self.variables[0]:
                rows = [self.prob[var][ROOT_STAGE]]
            else:
                rows = [self.prob[var][s] for s in st.expand(self.stages[var], n)]
            tables[var] = ctable_frame(self.tree, var, np.vstack(rows))
        return tables

    def expand_ctables(self) -> Dict[str, pd.DataFrame]:
        if self.ctables is None:
            raise MissingData("No data attached")
        return {
            var: ctable_frame(self.tree, var, np.atleast_2d(self.ctables[var]))
            for var in self.variables
        }

    def summary(self) -> pd.DataFrame:
        """Stages and parameters per variable"""
        rows = []
        for var in self.variables:
            labels = self.stage_labels(var)
            observed = [s for s in labels if s != self.name_unobserved]
            rows.append({
                'variable': var,
                'levels': self.tree.dims(var),
                'positions': self.tree.n_positions(var),
                'stages': len(labels),
                'df': len(observed) * (self.tree.dims(var) - 1),
            })
        return pd.DataFrame(rows).set_index('variable')

    def copy(self) -> 'StagedTree':
        """Deep, independent copy"""
        return copy.deepcopy(self)

    def __str__(self):
        parts = [f"{v}[{self.n_stages(v)}]" for v in self.variables]
        return f"StagedTree({' -> '.join(parts)})"


def _build(data, full: bool, order: Optional[Sequence[str]], lam: float,
           join_unobserved: bool, name_unobserved: Optional[str]) -> StagedTree:
    source: DataSource = as_source(data)
    tree = source.tree(order)
    model = StagedTree.from_tree(tree, full=full, lam=lam, name_unobserved=name_unobserved)
    joint = source.joint(tree)
    if joint is None:
        return model
    model.ctables = make_ctables(tree, joint)
    if join_unobserved and name_unobserved is not None:
        _join_unobserved(model, name_unobserved)
    return model.fit()


def _join_unobserved(model: StagedTree, name: str) -> None:
    """
    Move every position with no observations to stage ``name``.

    Positions left in ``name`` that now have observations each get a
    fresh stage of their own.
    """
    for var in model.variables[1:]:
        table = model.ctables[var]
        empty = table.sum(axis=1) == 0
        labels = st.expand(model.stages[var], table.shape[0])
        if not empty.any() and name not in labels:
            continue
        vector = [name if e else s for s, e in zip(labels, empty)]
        for pos, s in enumerate(labels):
            if s == name and not empty[pos]:
                vector[pos] = st.new_label(vector)
        model.stages[var] = vector
    model.clear_loglik()


def full(data, order: Optional[Sequence[str]] = None, lam: float = 0.0,
         join_unobserved: bool = True,
         name_unobserved: Optional[str] = UNOBSERVED) -> StagedTree:
    """Saturated staged tree fitted to ``data``"""
    return _build(data, True, order, lam, join_unobserved, name_unobserved)


def indep(data, order: Optional[Sequence[str]] = None, lam: float = 0.0,
          join_unobserved: bool = True,
          name_unobserved: Optional[str] = UNOBSERVED) -> StagedTree:
    """Independence staged tree fitted to ``data``"""
    return _build(data, False, order, lam, join_unobserved, name_unobserved)
