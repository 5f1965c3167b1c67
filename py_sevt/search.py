# py_sevt/search.py
"""Stage-merging model selection for staged event trees"""

from dataclasses import dataclass, field
from itertools import combinations
from typing import Callable, List, Optional, Sequence, Tuple, Union
import numpy as np
import yaml
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform

from .model import StagedTree, UNOBSERVED
from .definitions import SearchResult, SearchStatus, SearchStep
from .distance import Distance, distance_matrix, get_distance, simple_clustering
from .scores import Score, get_score
from . import stages as st
from .errors import BadStageAssignment, MissingData, UnfittedModel

Observer = Callable[[SearchStep], None]

ALGORITHMS = ('hc', 'bhc', 'fbhc', 'bhcr', 'hclust', 'bj')

CONFIG_KEYS = {
    'algorithm', 'max_iter', 'score', 'seed', 'ignore', 'scope',
    'distance', 'sample_size', 'k', 'method',
}


def print_trace(step: SearchStep) -> None:
    """Observer printing one line per iteration"""
    labels = ', '.join(step.labels) if step.labels else '-'
    print(f"{step.iteration:4d}  {step.variable or '-':12s} {step.action:8s} "
          f"[{labels}]  score={step.score:.4f}")


@dataclass
class Search:
    """
    Stage search on a fitted staged tree.

    Every algorithm works on its own copy of ``model`` and returns a
    ``SearchResult``; the input model is left untouched. A candidate is
    evaluated by applying it to the working copy, re-estimating the one
    variable it touches and scoring; only strictly better candidates are
    committed, and among equal scores the first one enumerated wins.
    """
    model: StagedTree
    algorithm: str = 'bhc'
    score: Union[str, float, Score] = 'bic'
    max_iter: int = 100
    seed: Optional[int] = None
    observer: Optional[Observer] = None
    ignore: Optional[List[str]] = None
    scope: Optional[List[str]] = None
    distance: Union[str, Distance] = 'kl'
    sample_size: int = 1
    k: Optional[int] = None
    method: str = 'average'
    _score: Score = field(init=False, repr=False)

    @classmethod
    def from_yaml(cls, model: StagedTree, yaml_path: str, **overrides) -> 'Search':
        """Create Search from the ``search`` section of a YAML file"""
        with open(yaml_path) as f:
            config = yaml.safe_load(f) or {}

        settings = config.get('search') or {}
        unknown = set(settings) - CONFIG_KEYS
        if unknown:
            raise ValueError(f"Unknown search settings {sorted(unknown)}")
        settings.update(overrides)
        return cls(model, **settings)

    def __post_init__(self):
        """Validate parameters and resolve score and scope"""
        if self.algorithm not in ALGORITHMS:
            raise ValueError(f"Unknown algorithm {self.algorithm!r}, expected one of {ALGORITHMS}")
        if self.max_iter < 1:
            raise ValueError("max_iter must be >= 1")
        if self.sample_size < 1:
            raise ValueError("sample_size must be >= 1")
        if self.k is not None and self.k < 1:
            raise ValueError("k must be >= 1")
        if not self.model.is_fitted():
            raise UnfittedModel("Search needs a fitted model with data attached")

        self._score = get_score(self.score)
        get_distance(self.distance)

        if self.ignore is None:
            name = self.model.name_unobserved
            self.ignore = [name] if name is not None else []
        variables = self.model.variables
        if self.scope is None:
            self.scope = variables[1:]
        else:
            bad = [v for v in self.scope if v not in variables[1:]]
            if bad:
                raise BadStageAssignment(f"Variables {bad} have no stages to search")
            # keep tree order whatever order the scope was given in
            self.scope = [v for v in variables[1:] if v in self.scope]

    def run(self, algorithm: Optional[str] = None) -> SearchResult:
        """Run ``algorithm`` (default: the configured one)"""
        algorithm = algorithm or self.algorithm
        if algorithm not in ALGORITHMS:
            raise ValueError(f"Unknown algorithm {algorithm!r}, expected one of {ALGORITHMS}")
        return getattr(self, algorithm)()

    # -- helpers -------------------------------------------------------------

    def _start(self) -> Tuple[StagedTree, SearchResult]:
        work = self.model.copy()
        result = SearchResult(work, scores=[self._score(work)])
        result.status = SearchStatus.ITERATING
        return work, result

    def _labels(self, work: StagedTree, var: str) -> List[str]:
        """Searchable stages of a variable"""
        return [s for s in work.stage_labels(var) if s not in self.ignore]

    def _try(self, work: StagedTree, var: str, labels: Sequence[str]) -> float:
        """Score of the model with ``var`` restaged, the model left as it was"""
        state = work.snapshot(var)
        work.set_stages(var, labels)
        value = self._score(work)
        work.restore(var, state)
        return value

    def _emit(self, result: SearchResult, var: Optional[str], action: str,
              labels: Sequence[str], value: float) -> None:
        step = SearchStep(len(result.steps) + 1, var, action, tuple(labels), value)
        result.steps.append(step)
        result.scores.append(value)
        if self.observer is not None:
            self.observer(step)

    def _merge_candidates(self, work: StagedTree, var: str,
                          pairs=None) -> List[Tuple[List[str], Tuple[str, str]]]:
        vector = work.stages[var]
        if pairs is None:
            pairs = combinations(self._labels(work, var), 2)
        return [(st.merge(vector, a, b), (a, b)) for a, b in pairs]

    def _best(self, work: StagedTree, candidates, current: float):
        """First candidate with the highest score strictly above ``current``"""
        best = None
        best_score = current
        for var, labels, info in candidates:
            value = self._try(work, var, labels)
            if value > best_score:
                best = (var, labels, info)
                best_score = value
        return best, best_score

    # -- searches ------------------------------------------------------------

    def hc(self) -> SearchResult:
        """
        Full hill-climbing.

        Each iteration tries moving every single position of every variable
        in scope to each other stage of that variable, or to a fresh stage,
        and commits the best move.
        """
        work, result = self._start()
        work.expand_stages()
        current = result.scores[0]

        def moves():
            for var in self.scope:
                vector = work.stages[var]
                labels = self._labels(work, var)
                fresh = st.new_label(list(vector) + list(self.ignore))
                for pos, s in enumerate(vector):
                    if s in self.ignore:
                        continue
                    targets = [t for t in labels if t != s]
                    if vector.count(s) > 1:
                        targets.append(fresh)
                    for t in targets:
                        cand = list(vector)
                        cand[pos] = t
                        action = 'split' if t == fresh else 'move'
                        yield var, cand, (action, pos + 1, s, t)

        for _ in range(self.max_iter):
            best, best_score = self._best(work, moves(), current)
            if best is None:
                result.status = SearchStatus.CONVERGED
                self._emit(result, None, 'none', (), current)
                break
            var, labels, (action, pos, s, t) = best
            work.set_stages(var, labels)
            current = best_score
            self._emit(result, var, action, (s, t), current)
        else:
            result.status = SearchStatus.MAX_ITER
        return result

    def bhc(self) -> SearchResult:
        """
        Backward hill-climbing: each iteration commits the best merge of two
        stages over all variables in scope.
        """
        work, result = self._start()
        current = result.scores[0]

        def merges():
            for var in self.scope:
                for cand, pair in self._merge_candidates(work, var):
                    yield var, cand, pair

        for _ in range(self.max_iter):
            best, best_score = self._best(work, merges(), current)
            if best is None:
                result.status = SearchStatus.CONVERGED
                self._emit(result, None, 'none', (), current)
                break
            var, labels, pair = best
            work.set_stages(var, labels)
            current = best_score
            self._emit(result, var, 'merge', pair, current)
        else:
            result.status = SearchStatus.MAX_ITER
        return result

    def fbhc(self) -> SearchResult:
        """
        Backward hill-climbing one variable at a time, in tree order; each
        variable gets up to ``max_iter`` merges before moving on.
        """
        work, result = self._start()
        current = result.scores[0]
        capped = False

        for var in self.scope:
            for _ in range(self.max_iter):
                candidates = [(var, cand, pair) for cand, pair in self._merge_candidates(work, var)]
                best, best_score = self._best(work, candidates, current)
                if best is None:
                    self._emit(result, var, 'none', (), current)
                    break
                _, labels, pair = best
                work.set_stages(var, labels)
                current = best_score
                self._emit(result, var, 'merge', pair, current)
            else:
                capped = True

        result.status = SearchStatus.MAX_ITER if capped else SearchStatus.CONVERGED
        return result

    def bhcr(self) -> SearchResult:
        """
        Randomized backward hill-climbing.

        Each of the ``max_iter`` iterations draws a variable with at least two
        stages and ``sample_size`` of its stage pairs, and commits the best
        improving merge among them. Draws come from ``numpy.random.default_rng(seed)``.
        """
        rng = np.random.default_rng(self.seed)
        work, result = self._start()
        current = result.scores[0]

        for _ in range(self.max_iter):
            variables = [v for v in self.scope if len(self._labels(work, v)) >= 2]
            if not variables:
                result.status = SearchStatus.CONVERGED
                self._emit(result, None, 'none', (), current)
                break
            var = variables[int(rng.integers(len(variables)))]
            pairs = list(combinations(self._labels(work, var), 2))
            size = min(self.sample_size, len(pairs))
            chosen = sorted(rng.choice(len(pairs), size=size, replace=False))
            candidates = [
                (var, cand, pair)
                for cand, pair in self._merge_candidates(work, var, [pairs[i] for i in chosen])
            ]
            best, best_score = self._best(work, candidates, current)
            if best is None:
                self._emit(result, var, 'none', (), current)
                continue
            _, labels, pair = best
            work.set_stages(var, labels)
            current = best_score
            self._emit(result, var, 'merge', pair, current)
        else:
            result.status = SearchStatus.MAX_ITER
        return result

    def hclust(self) -> SearchResult:
        """
        Hierarchical clustering of the stages of each variable.

        The stage probabilities are clustered with ``scipy`` agglomerative
        clustering (``method`` linkage over ``distance``); the tree is cut
        into ``k`` groups, or into every number of groups when ``k`` is None,
        and the best scoring cut is kept if it improves the score.
        """
        work, result = self._start()
        current = result.scores[0]
        distance = get_distance(self.distance)

        for var in self.scope:
            labels = self._labels(work, var)
            if len(labels) < 2:
                continue
            probs = {s: work.prob[var][s] for s in labels}
            # writable copy, pandas may hand back a read-only view
            M = np.array(distance_matrix(probs, distance), dtype=float)
            finite = M[np.isfinite(M)]
            ceiling = 2.0 * finite.max() + 1.0 if finite.size else 1.0
            M[~np.isfinite(M)] = ceiling
            Z = linkage(squareform(M, checks=False), method=self.method)

            ks = [min(self.k, len(labels))] if self.k else range(1, len(labels) + 1)
            candidates = []
            for k in ks:
                groups = fcluster(Z, t=k, criterion='maxclust')
                # every group is named after its first stage
                names = {}
                for s, g in zip(labels, groups):
                    names.setdefault(g, s)
                relabel = {s: names[g] for s, g in zip(labels, groups)}
                cand = [relabel.get(s, s) for s in work.stages[var]]
                candidates.append((var, cand, k))

            best, best_score = self._best(work, candidates, current)
            if best is None:
                self._emit(result, var, 'none', (), current)
                continue
            _, cand, k = best
            work.set_stages(var, cand)
            current = best_score
            self._emit(result, var, 'cluster', tuple(work.stage_labels(var)), current)

        result.status = SearchStatus.CONVERGED
        return result

    def bj(self) -> SearchResult:
        """
        Binary join: split the stages of a variable in two clusters with
        ``simple_clustering`` and merge a whole cluster into one stage when
        that improves the score, repeated up to ``max_iter`` times per
        variable.
        """
        work, result = self._start()
        current = result.scores[0]
        distance = get_distance(self.distance)
        capped = False

        for var in self.scope:
            for _ in range(self.max_iter):
                labels = self._labels(work, var)
                if len(labels) < 2:
                    break
                if len(labels) == 2:
                    groups = [labels]
                else:
                    probs = {s: work.prob[var][s] for s in labels}
                    I, J = simple_clustering(distance_matrix(probs, distance))
                    groups = [g for g in (I, J) if len(g) > 1]

                candidates = []
                for g in groups:
                    cand = work.stages[var]
                    for b in g[1:]:
                        cand = st.merge(cand, g[0], b)
                    candidates.append((var, cand, tuple(g)))

                best, best_score = self._best(work, candidates, current)
                if best is None:
                    self._emit(result, var, 'none', (), current)
                    break
                _, cand, group = best
                work.set_stages(var, cand)
                current = best_score
                self._emit(result, var, 'merge', group, current)
            else:
                capped = True

        result.status = SearchStatus.MAX_ITER if capped else SearchStatus.CONVERGED
        return result


def join_zero_counts(model: StagedTree, name: Optional[str] = None,
                     scope: Optional[Sequence[str]] = None) -> StagedTree:
    """
    Join every stage with no observations into stage ``name``.

    Zero-count stages contribute nothing to the log-likelihood, so the
    joined model has exactly the same log-likelihood.
    """
    if not model.has_ctables():
        raise MissingData("No data attached, zero counts are undefined")
    if name is None:
        name = model.name_unobserved or UNOBSERVED
    work = model.copy()
    for var in (work.variables[1:] if scope is None else scope):
        counts = work.stage_counts(var)
        zeros = {s for s, c in counts.items() if c.sum() == 0}
        if not zeros:
            continue
        vector = st.expand(work.stages[var], work.tree.n_positions(var))
        work.set_stages(var, [name if s in zeros else s for s in vector])
    return work


def naive(model: StagedTree, scope: Optional[Sequence[str]] = None) -> StagedTree:
    """Collapse every variable to a single stage (the independence model)"""
    work = model.copy()
    for var in (work.variables[1:] if scope is None else scope):
        work.set_stages(var, ["1"])
    return work


def stages_hc(model: StagedTree, **kwargs) -> SearchResult:
    return Search(model, algorithm='hc', **kwargs).run()


def stages_bhc(model: StagedTree, **kwargs) -> SearchResult:
    return Search(model, algorithm='bhc', **kwargs).run()


def stages_fbhc(model: StagedTree, **kwargs) -> SearchResult:
    return Search(model, algorithm='fbhc', **kwargs).run()


def stages_bhcr(model: StagedTree, **kwargs) -> SearchResult:
    return Search(model, algorithm='bhcr', **kwargs).run()


def stages_hclust(model: StagedTree, **kwargs) -> SearchResult:
    return Search(model, algorithm='hclust', **kwargs).run()


def stages_bj(model: StagedTree, **kwargs) -> SearchResult:
    return Search(model, algorithm='bj', **kwargs).run()
