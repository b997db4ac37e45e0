"""
Satisfiability and (multi-objective) optimization instances, and their
conversion to and from the clause level the preprocessor works on.

Cardinality and pseudo-Boolean constraints reach the preprocessor as
clauses produced by pluggable encoders. An encoder is any callable
``encoder(constraint, var_manager) -> List[List[int]]`` that allocates its
auxiliary variables from the given `VarManager`. The defaults use PySAT's
`CardEnc` and `PBEnc`.
"""
from typing import Callable, Dict, Iterable, List, Literal, Mapping, Optional, Tuple
from pydantic import BaseModel, Field, model_validator
from pysat.card import CardEnc
from pysat.pb import PBEnc

from prepro.core.errors import ValidationError
from prepro.core.types import Clause, DimacsLit, Weight, clause_to_ipasir, make_clause


class VarManager:
    """
    Hands out fresh auxiliary variables above the instance's variables.
    """
    def __init__(self, max_var: int = 0):
        self._next_id: int = max_var + 1

    @property
    def next_var_id(self) -> int:
        return self._next_id

    @property
    def max_id(self) -> int:
        return self._next_id - 1

    def fresh(self) -> int:
        vid = self._next_id
        self._next_id += 1
        return vid

    def reserve_up_to(self, var: int) -> None:
        """Marks every variable up to `var` as used."""
        self._next_id = max(self._next_id, var + 1)


class CardConstraint(BaseModel):
    """sum(lits) <op> bound"""
    lits: List[DimacsLit]
    bound: int = Field(ge=0)
    kind: Literal["atmost", "atleast", "equals"] = "atmost"


class PBConstraint(BaseModel):
    """sum(weight * lit) <op> bound"""
    lits: List[DimacsLit]
    weights: List[int]
    bound: int
    kind: Literal["leq", "geq", "equals"] = "leq"

    @model_validator(mode="after")
    def check_lengths(self) -> "PBConstraint":
        if len(self.lits) != len(self.weights):
            raise ValueError("PB constraint needs one weight per literal")
        return self


CardEncoder = Callable[[CardConstraint, VarManager], List[List[int]]]
PBEncoder = Callable[[PBConstraint, VarManager], List[List[int]]]


def default_card_encoder(constraint: CardConstraint, vm: VarManager) -> List[List[int]]:
    lits = list(constraint.lits)
    k = constraint.bound
    if constraint.kind == "atmost":
        if k >= len(lits):
            return []
        if k == 0:
            return [[-l] for l in lits]
        enc = CardEnc.atmost(lits=lits, bound=k, top_id=vm.max_id)
    elif constraint.kind == "atleast":
        if k == 0:
            return []
        if k > len(lits):
            return [[]]
        enc = CardEnc.atleast(lits=lits, bound=k, top_id=vm.max_id)
    else:
        if k > len(lits):
            return [[]]
        if k == 0:
            return [[-l] for l in lits]
        enc = CardEnc.equals(lits=lits, bound=k, top_id=vm.max_id)
    vm.reserve_up_to(enc.nv)
    return [list(c) for c in enc.clauses]


def default_pb_encoder(constraint: PBConstraint, vm: VarManager) -> List[List[int]]:
    encode = {"leq": PBEnc.leq, "geq": PBEnc.geq, "equals": PBEnc.equals}[constraint.kind]
    enc = encode(lits=list(constraint.lits), weights=list(constraint.weights),
                 bound=constraint.bound, top_id=vm.max_id)
    vm.reserve_up_to(enc.nv)
    return [list(c) for c in enc.clauses]


class SatInstance(BaseModel):
    """Clauses plus cardinality and pseudo-Boolean constraints."""
    clauses: List[List[DimacsLit]] = Field(default_factory=list)
    cards: List[CardConstraint] = Field(default_factory=list)
    pbs: List[PBConstraint] = Field(default_factory=list)

    def max_var(self) -> int:
        lits = [l for c in self.clauses for l in c]
        lits += [l for c in self.cards for l in c.lits]
        lits += [l for c in self.pbs for l in c.lits]
        return max((abs(l) for l in lits), default=0)

    def as_cnf(self, card_encoder: Optional[CardEncoder] = None,
               pb_encoder: Optional[PBEncoder] = None,
               vm: Optional[VarManager] = None) -> List[List[int]]:
        """All constraints as clauses; auxiliary variables come from `vm`."""
        card_encoder = card_encoder or default_card_encoder
        pb_encoder = pb_encoder or default_pb_encoder
        vm = vm or VarManager(self.max_var())
        cnf = [list(c) for c in self.clauses]
        for card in self.cards:
            cnf.extend(card_encoder(card, vm))
        for pb in self.pbs:
            cnf.extend(pb_encoder(pb, vm))
        return cnf

    @classmethod
    def from_clauses(cls, clauses: Iterable[Clause]) -> "SatInstance":
        return cls(clauses=[clause_to_ipasir(c) for c in clauses])


class WeightedClause(BaseModel):
    lits: List[DimacsLit]
    weight: Weight


class Objective(BaseModel):
    """
    A minimization objective: the weight of every true literal in `lits` and
    of every falsified clause in `clauses`, plus `offset`.
    """
    lits: Dict[DimacsLit, Weight] = Field(default_factory=dict)
    clauses: List[WeightedClause] = Field(default_factory=list)
    offset: int = 0

    def max_var(self) -> int:
        lits = list(self.lits) + [l for c in self.clauses for l in c.lits]
        return max((abs(l) for l in lits), default=0)

    def as_soft_clauses(self) -> Dict[Clause, int]:
        """A weighted literal l becomes the soft clause (-l); equal clauses sum their weights."""
        softs: Dict[Clause, int] = {}
        for lit, weight in self.lits.items():
            clause = make_clause([-lit])
            softs[clause] = softs.get(clause, 0) + weight
        for wc in self.clauses:
            clause = make_clause(wc.lits)
            softs[clause] = softs.get(clause, 0) + wc.weight
        return softs

    @classmethod
    def from_soft_clauses(cls, softs: Mapping[Clause, int], offset: int = 0) -> "Objective":
        return cls(
            clauses=[WeightedClause(lits=clause_to_ipasir(c), weight=w) for c, w in softs.items()],
            offset=offset,
        )


class OptInstance(BaseModel):
    constraints: SatInstance = Field(default_factory=SatInstance)
    objective: Objective = Field(default_factory=Objective)

    def max_var(self) -> int:
        return max(self.constraints.max_var(), self.objective.max_var())


class MultiOptInstance(BaseModel):
    constraints: SatInstance = Field(default_factory=SatInstance)
    objectives: List[Objective] = Field(default_factory=list)

    def max_var(self) -> int:
        return max([self.constraints.max_var()] + [o.max_var() for o in self.objectives])


def decompose(inst: MultiOptInstance, card_encoder: Optional[CardEncoder] = None,
              pb_encoder: Optional[PBEncoder] = None) -> Tuple[List[List[int]], List[Dict[Clause, int]], List[int]]:
    """Hard clauses, soft clauses per objective and objective offsets of an instance."""
    vm = VarManager(inst.max_var())
    try:
        hards = inst.constraints.as_cnf(card_encoder, pb_encoder, vm)
    except ValueError as e:
        raise ValidationError(f"Failed to encode constraints: {e}") from e
    softs = [obj.as_soft_clauses() for obj in inst.objectives]
    offsets = [obj.offset for obj in inst.objectives]
    return hards, softs, offsets
