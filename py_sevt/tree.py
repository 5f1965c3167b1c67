# py_sevt/tree.py
"""Symmetric event tree defined only by the ordered levels of its variables"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import numpy as np
import yaml

from .errors import InvalidLevels, InvalidPath


@dataclass
class Tree:
    """
    Ordered mapping variable -> levels.

    The tree itself is never built: a node at the depth of variable ``v`` has
    one child per level of ``v``, so positions are recovered by mixed-radix
    arithmetic over the level cardinalities.
    """
    levels: Dict[str, List[str]] = field(default_factory=dict)
    _lookup: Dict[str, Dict[str, int]] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Validate levels and build the level -> index lookup"""
        if not self.levels:
            raise InvalidLevels("Tree needs at least one variable")

        levels = {}
        for var, values in self.levels.items():
            values = [str(v) for v in values]
            if len(values) == 0:
                raise InvalidLevels(f"Variable {var} has no levels")
            if len(set(values)) != len(values):
                raise InvalidLevels(f"Variable {var} has duplicate levels {values}")
            levels[str(var)] = values
        self.levels = levels

        # 1-based index of every level
        self._lookup = {
            var: {lev: i + 1 for i, lev in enumerate(values)}
            for var, values in self.levels.items()
        }

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'Tree':
        """Create Tree from a YAML file with a ``variables`` mapping"""
        with open(yaml_path) as f:
            config = yaml.safe_load(f)

        if not config or 'variables' not in config:
            raise InvalidLevels(f"No variables defined in {yaml_path}")

        levels = {}
        for name, info in config['variables'].items():
            if isinstance(info, dict):
                levels[name] = info.get('levels') or []
            else:
                levels[name] = info or []
        return cls(levels)

    @property
    def variables(self) -> List[str]:
        """Variables in tree order"""
        return list(self.levels)

    @property
    def cardinalities(self) -> np.ndarray:
        return np.array([len(v) for v in self.levels.values()], dtype=int)

    def dims(self, var: str) -> int:
        """Number of levels of a variable"""
        return len(self.levels[var])

    def depth(self, var: str) -> int:
        """0-based depth of a variable in the tree"""
        try:
            return self.variables.index(var)
        except ValueError:
            raise KeyError(f"Unknown variable {var}")

    def n_positions(self, var: str) -> int:
        """Number of tree nodes (situations) whose outgoing edges are ``var``'s levels"""
        d = self.depth(var)
        return int(np.prod(self.cardinalities[:d])) if d > 0 else 1

    def index(self, path: Sequence, complete: bool = False) -> int:
        """
        Integer position of the node reached by ``path``.

        Args:
            path: one level per variable, starting from the first variable
            complete: if True use the complete indexing (unique over all
                depths) instead of the position among nodes of the same depth

        Returns:
            1-based index of the node
        """
        k = len(path)
        if k == 0 or k > len(self.levels):
            raise InvalidPath(f"Path of length {k} on a tree of depth {len(self.levels)}")

        idx = []
        for var, value in zip(self.variables, path):
            try:
                idx.append(self._lookup[var][str(value)])
            except KeyError:
                raise InvalidPath(f"{value!r} is not a level of {var}")

        if k == 1:
            return idx[0]

        ls = self.cardinalities[:k]
        # weight of element i is the product of the fan-outs below it
        weights = [int(np.prod(ls[i + 1:k])) for i in range(k - 1)]
        if complete:
            return int(sum(w * i for w, i in zip(weights, idx[:-1])) + idx[-1])
        return int(sum(w * (i - 1) for w, i in zip(weights, idx[:-1])) + idx[-1])

    def path(self, var: str, position: int) -> Tuple[str, ...]:
        """Path of preceding levels leading to ``position`` at the depth of ``var``"""
        d = self.depth(var)
        n = self.n_positions(var)
        if not 1 <= position <= n:
            raise InvalidPath(f"Position {position} outside 1..{n} for {var}")
        if d == 0:
            return ()
        codes = np.unravel_index(position - 1, tuple(self.cardinalities[:d]))
        return tuple(self.levels[v][int(c)] for v, c in zip(self.variables[:d], codes))

    def subtree(self, order: Optional[Sequence[str]] = None) -> 'Tree':
        """Tree restricted to (and reordered as) ``order``"""
        if order is None:
            return Tree({v: list(l) for v, l in self.levels.items()})
        missing = [v for v in order if v not in self.levels]
        if missing:
            raise InvalidLevels(f"Unknown variables {missing}")
        return Tree({v: list(self.levels[v]) for v in order})
