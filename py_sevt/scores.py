# py_sevt/scores.py
"""Model scores used by the searches; higher is better"""

from typing import Callable, Dict, Union
import numpy as np

from .model import StagedTree

Score = Callable[[StagedTree], float]


def bic(model: StagedTree) -> float:
    """Negative BIC"""
    return 2.0 * model.loglik() - np.log(model.n_obs()) * model.df()


def aic(model: StagedTree) -> float:
    """Negative AIC"""
    return 2.0 * model.loglik() - 2.0 * model.df()


def loglik(model: StagedTree) -> float:
    return model.loglik()


def penalized(k: float) -> Score:
    """Twice the log-likelihood minus ``k`` per free parameter"""
    if k < 0:
        raise ValueError(f"Penalty must be >= 0, got {k}")

    def score(model: StagedTree) -> float:
        return 2.0 * model.loglik() - k * model.df()

    score.__name__ = f"penalized({k})"
    return score


SCORES: Dict[str, Score] = {
    'bic': bic,
    'aic': aic,
    'loglik': loglik,
}


def get_score(value: Union[str, float, Score]) -> Score:
    """Resolve a score name, a penalty weight or a callable"""
    if callable(value):
        return value
    if isinstance(value, str):
        try:
            return SCORES[value.lower()]
        except KeyError:
            raise ValueError(f"Unknown score {value!r}, expected one of {sorted(SCORES)}")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return penalized(float(value))
    raise ValueError(f"Invalid score {value!r}")
