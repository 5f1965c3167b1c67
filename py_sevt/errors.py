# py_sevt/errors.py
"""Exception types raised by py-sevt"""


class SevtError(Exception):
    """Base class for all staged event tree errors"""


class InvalidLevels(SevtError, ValueError):
    """A variable's levels are empty or duplicated, or data falls outside them"""


class InvalidPath(SevtError, ValueError):
    """A path element is not among the levels of its variable"""


class UnfittedModel(SevtError, RuntimeError):
    """Probabilities requested from a model that was never fitted"""


class MissingData(SevtError, ValueError):
    """Counts requested from a model with no attached data"""


class BadStageAssignment(SevtError, ValueError):
    """Stage vector or stage label inconsistent with the tree"""


class DegenerateDistance(SevtError, ValueError):
    """Distance between probability vectors of different support"""
