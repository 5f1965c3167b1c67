# py_sevt/definitions.py
"""Dataclass definitions for search state and results"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .model import StagedTree


class SearchStatus(Enum):
    """Lifecycle of a search run"""
    NOT_STARTED = "not-started"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITER = "max-iterations-reached"


@dataclass(frozen=True)
class SearchStep:
    """One search iteration, as handed to observers"""
    iteration: int                  # 1-based, counted per search run
    variable: Optional[str]         # variable touched, None if nothing committed
    action: str                     # 'merge', 'move', 'split', 'cluster' or 'none'
    labels: Tuple[str, ...]         # stages involved in the action
    score: float                    # score after the iteration


@dataclass
class SearchResult:
    """Final model of a search with its score trajectory"""
    model: StagedTree
    scores: List[float] = field(default_factory=list)  # start score, then one per iteration
    steps: List[SearchStep] = field(default_factory=list)
    status: SearchStatus = SearchStatus.NOT_STARTED

    @property
    def score(self) -> float:
        return self.scores[-1]

    @property
    def n_iter(self) -> int:
        return len(self.steps)
