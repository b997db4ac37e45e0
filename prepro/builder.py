from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union
import numpy as np

from prepro.backends.base import EngineBackend
from prepro.core.errors import ValidationError
from prepro.core.logging import get_logger
from prepro.core.types import U64_MAX, Clause, LitLike, encode_lit, make_clause

logger = get_logger(__name__)

# An objective: clause -> weight mapping, or a sequence of (clause, weight) pairs
SoftClauses = Union[Mapping[Any, int], Iterable[Tuple[Iterable[LitLike], int]]]


def soft_pairs(objective: SoftClauses) -> List[Tuple[Clause, int]]:
    """Normalizes one objective into (canonical clause, weight) pairs, preserving order."""
    items = objective.items() if isinstance(objective, Mapping) else objective
    pairs = []
    for clause, weight in items:
        if isinstance(weight, bool) or not isinstance(weight, (int, np.integer)) or weight < 0:
            raise ValidationError(f"Soft clause weight must be a non-negative integer, got {weight!r}")
        pairs.append((make_clause(clause), int(weight)))
    return pairs


def compute_top_weight(objectives: Sequence[Sequence[Tuple[Clause, int]]]) -> int:
    """1 + the sum of all weights of all objectives."""
    top = 1 + sum(w for pairs in objectives for _, w in pairs)
    if top > U64_MAX:
        raise ValidationError(f"Top weight {top} does not fit into 64 bits")
    return top


def weight_matrix(objectives: Sequence[Sequence[Tuple[Clause, int]]]) -> Tuple[List[Clause], np.ndarray]:
    """
    Lays out the soft clauses as a clauses x objectives weight matrix.

    Every (objective, clause) pair gets its own row; the row holds the real
    weight in the column of its objective and zero everywhere else.
    """
    clauses = []
    owners = []
    for obj_idx, pairs in enumerate(objectives):
        for clause, weight in pairs:
            clauses.append(clause)
            owners.append((obj_idx, weight))
    matrix = np.zeros((len(clauses), len(objectives)), dtype=np.uint64)
    for row, (obj_idx, weight) in enumerate(owners):
        matrix[row, obj_idx] = weight
    return clauses, matrix


class InitBuilder:
    """
    Streams a weighted instance into a fresh engine handle and finalizes it.
    """

    def __init__(self, backend: EngineBackend, hards: Iterable[Iterable[LitLike]],
                 softs: Sequence[SoftClauses], inprocessing: bool = False):
        self.backend = backend
        self.inprocessing = inprocessing
        self.hards = [make_clause(c) for c in hards]
        self.objectives = [soft_pairs(obj) for obj in softs]
        self.top_weight = compute_top_weight(self.objectives)
        self.soft_clauses, self.matrix = weight_matrix(self.objectives)

    @property
    def n_objectives(self) -> int:
        return len(self.objectives)

    def _stream_clause(self, handle: Any, clause: Clause) -> None:
        for lit in clause:
            self.backend.init_add_lit(handle, encode_lit(lit))
        self.backend.init_add_lit(handle, 0)

    def build(self) -> Any:
        """Opens, populates and finalizes a handle. The handle is released on failure."""
        handle = self.backend.open(self.top_weight, self.inprocessing, self.n_objectives)
        try:
            for clause in self.hards:
                self._stream_clause(handle, clause)
            for clause, weights in zip(self.soft_clauses, self.matrix):
                for w in weights:
                    self.backend.init_add_weight(handle, int(w))
                self._stream_clause(handle, clause)
            self.backend.init_finalize(handle)
        except Exception:
            self.backend.release(handle)
            raise
        logger.debug(
            f"Initialized {self.backend.name} session: {len(self.hards)} hard, "
            f"{len(self.soft_clauses)} soft clauses, {self.n_objectives} objectives, "
            f"top weight {self.top_weight}"
        )
        return handle
