from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from pysat.formula import WCNF

from prepro.backends.base import EngineBackend
from prepro.core.errors import EngineContractError, ValidationError
from prepro.core.types import Clause, clause_to_ipasir, decode_lit


@dataclass
class PreproInstance:
    """
    A simplified instance as read back from the engine.

    `softs` only has as many entries as the highest objective index that
    still carries a soft clause; use `objective()` for padded access.
    """
    hards: List[Clause]
    softs: List[Dict[Clause, int]]
    top_weight: int
    removed_weight: List[int] = field(default_factory=list)

    @property
    def n_objectives(self) -> int:
        return len(self.removed_weight)

    def objective(self, idx: int) -> Dict[Clause, int]:
        return self.softs[idx] if idx < len(self.softs) else {}

    def to_wcnf(self) -> WCNF:
        """Converts a single objective instance to a PySAT WCNF."""
        if len(self.softs) > 1:
            raise ValidationError("WCNF holds a single objective")
        formula = WCNF()
        for clause in self.hards:
            formula.append(clause_to_ipasir(clause))
        for clause, weight in self.objective(0).items():
            # PySAT treats a zero weight as hard
            if weight > 0:
                formula.append(clause_to_ipasir(clause), weight=weight)
        return formula


def classify_rows(rows: Iterable[Tuple[Clause, Sequence[int]]], top_weight: int,
                  n_obj: int) -> Tuple[List[Clause], List[Dict[Clause, int]]]:
    """
    Splits a clause/weight table into hard clauses and per-objective soft clauses.

    A clause is hard iff its weight equals the top weight under every
    objective. Otherwise it is a soft clause of each objective whose weight
    differs from the top weight, and a clause can be soft under several
    objectives. Equal clauses within one objective have their weights summed.
    """
    hards: List[Clause] = []
    softs: List[Dict[Clause, int]] = []
    for clause, weights in rows:
        is_hard = True
        for obj_idx in range(n_obj):
            w = weights[obj_idx]
            if w != top_weight:
                if len(softs) < obj_idx + 1:
                    softs.extend({} for _ in range(obj_idx + 1 - len(softs)))
                softs[obj_idx][clause] = softs[obj_idx].get(clause, 0) + w
                is_hard = False
        if is_hard:
            hards.append(clause)
    assert len(softs) <= n_obj, f"{len(softs)} objectives read back, {n_obj} declared"
    return hards, softs


def read_clause(backend: EngineBackend, handle: Any, clause_idx: int) -> Clause:
    lits = []
    lit_idx = 0
    while True:
        value = backend.prepro_lit(handle, clause_idx, lit_idx)
        if value == 0:
            break
        lits.append(decode_lit(value))
        lit_idx += 1
    return tuple(sorted(lits))


def read_rows(backend: EngineBackend, handle: Any, n_obj: int) -> List[Tuple[Clause, List[int]]]:
    """The engine's flat clause table: (clause, weight per objective) per clause index."""
    rows = []
    for clause_idx in range(backend.n_prepro_clauses(handle)):
        clause = read_clause(backend, handle, clause_idx)
        weights = [backend.prepro_weight(handle, clause_idx, obj_idx) for obj_idx in range(n_obj)]
        rows.append((clause, weights))
    return rows


def extract_instance(backend: EngineBackend, handle: Any, n_obj: int) -> PreproInstance:
    top = backend.top_weight(handle)
    if top < 1:
        raise EngineContractError(f"Engine reported top weight {top}")
    hards, softs = classify_rows(read_rows(backend, handle, n_obj), top, n_obj)
    removed = [backend.removed_weight(handle, obj_idx) for obj_idx in range(n_obj)]
    return PreproInstance(hards=hards, softs=softs, top_weight=top, removed_weight=removed)
