from dataclasses import dataclass
from typing import Annotated, Dict, Iterable, Iterator, List, Optional, Tuple, Union
from pydantic import AfterValidator, Field, RootModel, field_validator
from prepro.core.errors import ValidationError

# Scalar types and constraints
def check_nonzero(v: int) -> int:
    if v == 0:
        raise ValueError("Literal cannot be zero")
    return v

CnfVar = Annotated[int, Field(gt=0)]
DimacsLit = Annotated[int, AfterValidator(check_nonzero)]
Weight = Annotated[int, Field(ge=0)]

# Weights and the top weight cross the engine boundary as uint64_t
U64_MAX = 2 ** 64 - 1


@dataclass(frozen=True, order=True)
class Lit:
    """
    A literal: a variable together with a polarity.

    Variables are numbered from 1. The canonical integer encoding is the
    IPASIR/DIMACS one: the magnitude is the variable, the sign the polarity.
    Ordering is by variable first, positive before negative.
    """
    var: int
    negated: bool = False

    def __post_init__(self):
        if not isinstance(self.var, int) or isinstance(self.var, bool) or self.var < 1:
            raise ValueError(f"Variable must be a positive integer, got {self.var!r}")

    @classmethod
    def pos(cls, var: int) -> "Lit":
        return cls(var, False)

    @classmethod
    def neg(cls, var: int) -> "Lit":
        return cls(var, True)

    @classmethod
    def from_ipasir(cls, value: int) -> "Lit":
        """Decodes a non-zero signed integer. Zero is the clause terminator, not a literal."""
        if value == 0:
            raise ValueError("0 is the clause terminator and not a literal")
        return cls(abs(value), value < 0)

    def to_ipasir(self) -> int:
        return -self.var if self.negated else self.var

    def __neg__(self) -> "Lit":
        return Lit(self.var, not self.negated)

    def __invert__(self) -> "Lit":
        return -self

    def __repr__(self) -> str:
        return f"~x{self.var}" if self.negated else f"x{self.var}"


LitLike = Union[Lit, int]
Clause = Tuple[Lit, ...]


# Literal codec
def encode_lit(lit: Lit) -> int:
    return lit.to_ipasir()

def decode_lit(value: int) -> Lit:
    return Lit.from_ipasir(value)

# Bool codec for the engine's integer truth values
def encode_bool(value: bool) -> int:
    return 1 if value else 0

def decode_bool(value: int) -> bool:
    return value != 0

# Reconstructed values come back as signed ints: positive means true
def decode_signed_bool(value: int) -> bool:
    return value > 0


def as_lit(value: LitLike) -> Lit:
    """Accepts a Lit or a DIMACS integer."""
    if isinstance(value, Lit):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Expected a literal, got {value!r}")
    try:
        return Lit.from_ipasir(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e

def make_clause(lits: Iterable[LitLike]) -> Clause:
    """Canonical clause: literals sorted by variable, then polarity."""
    return tuple(sorted(as_lit(l) for l in lits))

def clause_to_ipasir(clause: Iterable[Lit]) -> List[int]:
    return [encode_lit(l) for l in clause]


class DimacsClause(RootModel):
    """A list of non-zero DIMACS literals."""
    root: List[DimacsLit]

class DimacsCNF(RootModel):
    """A list of clauses."""
    root: List[DimacsClause]

def validate_clauses(cnf: Iterable[Iterable[int]]) -> List[List[int]]:
    """
    Validates a DIMACS clause list.
    Raises ValidationError if the structure is invalid.
    """
    try:
        doc = DimacsCNF.model_validate([list(c) for c in cnf])
    except Exception as e:
        raise ValidationError(f"Invalid CNF structure: {e}")
    return [list(c.root) for c in doc.root]


class Assignment:
    """
    A partial or total mapping from variables to truth values.

    Built from literals; a positive literal assigns true, a negative one
    false. Iterating yields the assigned literals ordered by variable.
    """

    def __init__(self, lits: Iterable[LitLike] = ()):
        self._values: Dict[int, bool] = {}
        for l in lits:
            self.assign(as_lit(l))

    @classmethod
    def from_model(cls, model: Optional[Iterable[int]]) -> "Assignment":
        """Builds an assignment from a solver model (list of DIMACS ints)."""
        return cls(l for l in (model or []) if l != 0)

    def assign(self, lit: Lit) -> None:
        value = not lit.negated
        current = self._values.get(lit.var)
        if current is not None and current != value:
            raise ValidationError(f"Conflicting values for variable {lit.var}")
        self._values[lit.var] = value

    def value(self, var: int) -> Optional[bool]:
        return self._values.get(var)

    def lit_value(self, lit: LitLike) -> Optional[bool]:
        lit = as_lit(lit)
        val = self._values.get(lit.var)
        if val is None:
            return None
        return val != lit.negated

    def satisfies(self, clause: Iterable[LitLike]) -> bool:
        return any(self.lit_value(l) for l in clause)

    @property
    def max_var(self) -> int:
        return max(self._values, default=0)

    def is_total(self, max_var: int) -> bool:
        return all(v in self._values for v in range(1, max_var + 1))

    def lits(self) -> List[Lit]:
        return [Lit(v, not self._values[v]) for v in sorted(self._values)]

    def to_model(self) -> List[int]:
        return [encode_lit(l) for l in self.lits()]

    def __iter__(self) -> Iterator[Lit]:
        return iter(self.lits())

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, item: LitLike) -> bool:
        return self.lit_value(item) is True

    def __eq__(self, other) -> bool:
        if not isinstance(other, Assignment):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Assignment({self.lits()!r})"
