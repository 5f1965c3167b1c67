"""
py-sevt: staged event trees for ordered categorical variables
"""

__version__ = "0.1.0"

# py_sevt/__init__.py

from .tree import Tree
from .model import StagedTree, full, indep, estimate_stages, UNOBSERVED
from .sources import (
    LevelsSource,
    RecordsSource,
    CountTableSource,
    as_source,
    read_source,
)
from .ctables import joint_counts, make_ctables
from .distance import DISTANCES, distance_matrix, simple_clustering
from .scores import bic, aic, loglik, penalized, get_score
from .definitions import SearchResult, SearchStatus, SearchStep
from .search import (
    Search,
    join_zero_counts,
    naive,
    print_trace,
    stages_hc,
    stages_bhc,
    stages_fbhc,
    stages_bhcr,
    stages_hclust,
    stages_bj,
)
from .errors import (
    SevtError,
    InvalidLevels,
    InvalidPath,
    UnfittedModel,
    MissingData,
    BadStageAssignment,
    DegenerateDistance,
)

__all__ = [
    'Tree',
    'StagedTree',
    'full',
    'indep',
    'estimate_stages',
    'UNOBSERVED',
    'LevelsSource',
    'RecordsSource',
    'CountTableSource',
    'as_source',
    'read_source',
    'joint_counts',
    'make_ctables',
    'DISTANCES',
    'distance_matrix',
    'simple_clustering',
    'bic',
    'aic',
    'loglik',
    'penalized',
    'get_score',
    'SearchResult',
    'SearchStatus',
    'SearchStep',
    'Search',
    'join_zero_counts',
    'naive',
    'print_trace',
    'stages_hc',
    'stages_bhc',
    'stages_fbhc',
    'stages_bhcr',
    'stages_hclust',
    'stages_bj',
    'SevtError',
    'InvalidLevels',
    'InvalidPath',
    'UnfittedModel',
    'MissingData',
    'BadStageAssignment',
    'DegenerateDistance',
]
