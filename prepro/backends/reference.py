"""
Pure python preprocessing engine.

Implements the complete engine interface with a small set of sound
techniques, each recorded in a reconstruction trace:

    u   unit propagation (fixes literals, retires falsified soft weight)
    s   subsumption by hard clauses
    b   blocked clause elimination on hard clauses (disabled when inprocessing)

Technique strings follow the MaxPre syntax: letters run in order, a
bracketed group repeats until none of its techniques changes the formula
and `#` separates stages. Letters of techniques this engine does not
implement are skipped.
"""
import sys
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel

from prepro import __version__
from prepro.backends.base import EngineBackend, BOOL_OPTIONS, INT_OPTIONS
from prepro.core.errors import EngineContractError, RejectedError, ValidationError
from prepro.core.logging import get_logger
from prepro.core.types import U64_MAX

logger = get_logger(__name__)


class TechniqueRecord(BaseModel):
    """One run of one technique."""
    technique: str
    changed: bool
    clauses_before: int
    clauses_after: int
    fixed_after: int
    seconds: float


@dataclass
class _Row:
    lits: List[int]
    # None for hard clauses
    weights: Optional[List[int]] = None
    label: bool = False

    @property
    def hard(self) -> bool:
        return self.weights is None


class ReferenceHandle:
    """State of one session inside the reference engine."""

    def __init__(self, top_weight: int, inprocessing: bool, n_objectives: int = 0):
        self.top = top_weight
        self.inprocessing = inprocessing
        self.finalized = False
        self.preprocessed = False
        self.released = False
        self.n_obj = n_objectives
        self.max_var = 0
        self.rows: List[_Row] = []
        self.fixed: List[int] = []
        self.removed: List[int] = []
        # ("fix", lit) or ("bce", clause, blocking_lit), in elimination order
        self.trace: List[Tuple[Any, ...]] = []
        self.pending_lits: List[int] = []
        self.pending_weights: List[int] = []
        self.add_buffer: List[int] = []
        self.assignment: List[int] = []
        self.reconstructed: Dict[int, bool] = {}
        self.options: Dict[str, Union[bool, int]] = {}
        self.no_change: Dict[str, int] = {}
        self.technique_log: List[TechniqueRecord] = []
        self.info_log: List[str] = []

    @property
    def mutable(self) -> bool:
        return self.finalized and (self.inprocessing or not self.preprocessed)

    def labels(self) -> List[int]:
        return [row.lits[0] for row in self.rows if row.label]

    def label_row(self, label: int) -> Optional[_Row]:
        for row in self.rows:
            if row.label and row.lits[0] == label:
                return row
        return None


def parse_techniques(techniques: str) -> List[Tuple[List[str], bool]]:
    """Splits a technique string into (techniques, repeat_until_fixpoint) groups."""
    plan = []
    group: Optional[List[str]] = None
    for ch in techniques:
        if ch.isspace() or ch == '#':
            if group is not None and ch == '#':
                raise ValidationError(f"Stage separator inside a group in '{techniques}'")
            continue
        if ch == '[':
            if group is not None:
                raise ValidationError(f"Nested technique group in '{techniques}'")
            group = []
        elif ch == ']':
            if group is None:
                raise ValidationError(f"Unbalanced ']' in '{techniques}'")
            plan.append((group, True))
            group = None
        elif group is not None:
            group.append(ch)
        else:
            plan.append(([ch], False))
    if group is not None:
        raise ValidationError(f"Unbalanced '[' in '{techniques}'")
    return plan


def _unit_propagate(h: ReferenceHandle) -> bool:
    values = {abs(l): l for l in h.fixed}
    changed = False
    while True:
        alive = []
        for row in h.rows:
            if any(values.get(abs(l)) == l for l in row.lits):
                changed = True
                continue
            kept = [l for l in row.lits if values.get(abs(l)) != -l]
            if len(kept) < len(row.lits):
                changed = True
                row.lits = kept
            if not kept and not row.hard:
                # Falsified soft clause: its weight is a fixed cost
                for i, w in enumerate(row.weights):
                    h.removed[i] += w
                continue
            alive.append(row)
        h.rows = alive

        new_units = False
        for row in h.rows:
            if row.hard and len(row.lits) == 1:
                lit = row.lits[0]
                if abs(lit) not in values:
                    values[abs(lit)] = lit
                    h.fixed.append(lit)
                    h.trace.append(("fix", lit))
                    new_units = True
        if not new_units:
            return changed


def _subsume(h: ReferenceHandle) -> bool:
    removed = set()
    sets = [frozenset(row.lits) for row in h.rows]
    hard_idx = sorted(
        (i for i, row in enumerate(h.rows) if row.hard),
        key=lambda i: (len(sets[i]), i),
    )
    for i in hard_idx:
        if i in removed:
            continue
        for j in range(len(h.rows)):
            if j != i and j not in removed and sets[i] <= sets[j]:
                removed.add(j)
    if not removed:
        return False
    h.rows = [row for j, row in enumerate(h.rows) if j not in removed]
    return True


def _blocked_clause_elimination(h: ReferenceHandle) -> bool:
    if h.inprocessing:
        return False
    soft_vars = {abs(l) for row in h.rows if not row.hard for l in row.lits}
    hard_rows = [row for row in h.rows if row.hard]
    sets = {id(row): set(row.lits) for row in hard_rows}
    eliminated = set()
    for row in hard_rows:
        for lit in row.lits:
            if abs(lit) in soft_vars:
                continue
            blocked = True
            for other in hard_rows:
                if other is row or id(other) in eliminated or -lit not in sets[id(other)]:
                    continue
                if not any(m != lit and -m in sets[id(other)] for m in row.lits):
                    blocked = False
                    break
            if blocked:
                eliminated.add(id(row))
                h.trace.append(("bce", tuple(row.lits), lit))
                break
    if not eliminated:
        return False
    h.rows = [row for row in h.rows if id(row) not in eliminated]
    return True


_TECHNIQUES = {
    "u": _unit_propagate,
    "s": _subsume,
    "b": _blocked_clause_elimination,
}


class ReferenceBackend(EngineBackend):
    """The pure python engine."""

    @property
    def name(self) -> str:
        return "reference"

    def signature(self) -> bytes:
        return f"prepro-reference {__version__}".encode("utf-8")

    def _live(self, handle: Any) -> ReferenceHandle:
        if not isinstance(handle, ReferenceHandle) or handle.released:
            raise EngineContractError("Invalid or released reference engine handle")
        return handle

    # Construction
    def open(self, top_weight: int, inprocessing: bool, n_objectives: int = 0) -> ReferenceHandle:
        return ReferenceHandle(top_weight, inprocessing, n_objectives)

    def init_add_weight(self, handle: Any, weight: int) -> None:
        h = self._live(handle)
        if h.finalized:
            raise RejectedError("Session already finalized")
        h.pending_weights.append(weight)

    def init_add_lit(self, handle: Any, lit: int) -> None:
        h = self._live(handle)
        if h.finalized:
            raise RejectedError("Session already finalized")
        if lit != 0:
            h.pending_lits.append(lit)
            h.max_var = max(h.max_var, abs(lit))
            return
        weights = h.pending_weights or None
        h.rows.append(_Row(h.pending_lits, weights))
        if weights is not None:
            h.n_obj = max(h.n_obj, len(weights))
        h.pending_lits = []
        h.pending_weights = []

    def init_finalize(self, handle: Any) -> None:
        h = self._live(handle)
        if h.finalized:
            raise RejectedError("Session already finalized")
        h.removed = [0] * h.n_obj
        label_vars = set()
        for row in h.rows:
            if row.hard:
                continue
            row.weights.extend([0] * (h.n_obj - len(row.weights)))
            if len(row.lits) == 1 and abs(row.lits[0]) not in label_vars:
                row.label = True
                label_vars.add(abs(row.lits[0]))
        h.finalized = True
        h.info_log.append(
            f"finalized: {len(h.rows)} clauses, {h.max_var} variables, "
            f"{h.n_obj} objectives, top weight {h.top}"
        )

    def release(self, handle: Any) -> None:
        h = self._live(handle)
        h.released = True
        h.rows = []
        h.trace = []

    # Preprocessing
    def preprocess(self, handle: Any, techniques: str, log_level: int,
                   time_limit: float, add_removed_weight: bool) -> None:
        h = self._live(handle)
        if not h.finalized:
            raise RejectedError("Session not finalized")
        plan = parse_techniques(techniques)
        deadline = time.monotonic() + time_limit
        removed_before = sum(h.removed)
        skip_after = int(h.options.get("skip_technique", 0) or 0)
        unsupported = sorted({t for group, _ in plan for t in group if t not in _TECHNIQUES})
        if unsupported and log_level >= 1:
            logger.info(f"Skipping techniques not implemented by the reference engine: {''.join(unsupported)}")

        timed_out = False
        for group, repeat in plan:
            while not timed_out:
                group_changed = False
                for t in group:
                    if t not in _TECHNIQUES:
                        continue
                    if time.monotonic() >= deadline:
                        timed_out = True
                        break
                    if skip_after > 0 and h.no_change.get(t, 0) >= skip_after:
                        continue
                    changed = self._run(h, t, log_level)
                    h.no_change[t] = 0 if changed else h.no_change.get(t, 0) + 1
                    group_changed = group_changed or changed
                if not repeat or not group_changed:
                    break
            if timed_out:
                h.info_log.append("time limit reached")
                if log_level >= 1:
                    logger.info("Preprocessing stopped at the time limit")
                break

        removed_now = sum(h.removed) - removed_before
        if add_removed_weight and removed_now:
            h.top += removed_now
        h.preprocessed = True
        h.info_log.append(
            f"preprocessed '{techniques}': {len(h.rows)} clauses, {len(h.fixed)} fixed, "
            f"removed weight {h.removed}"
        )

    def _run(self, h: ReferenceHandle, technique: str, log_level: int) -> bool:
        before = len(h.rows)
        start = time.monotonic()
        changed = _TECHNIQUES[technique](h)
        record = TechniqueRecord(
            technique=technique,
            changed=changed,
            clauses_before=before,
            clauses_after=len(h.rows),
            fixed_after=len(h.fixed),
            seconds=time.monotonic() - start,
        )
        h.technique_log.append(record)
        if log_level >= 1:
            logger.info(f"Technique {technique}: {before} -> {len(h.rows)} clauses")
        if log_level >= 2:
            logger.debug(record.model_dump_json())
        return changed

    # Readback
    def top_weight(self, handle: Any) -> int:
        return self._live(handle).top

    def n_prepro_clauses(self, handle: Any) -> int:
        return len(self._live(handle).rows)

    def n_prepro_labels(self, handle: Any) -> int:
        return len(self._live(handle).labels())

    def n_prepro_fixed(self, handle: Any) -> int:
        return len(self._live(handle).fixed)

    def prepro_lit(self, handle: Any, clause_idx: int, lit_idx: int) -> int:
        lits = self._live(handle).rows[clause_idx].lits
        return lits[lit_idx] if lit_idx < len(lits) else 0

    def prepro_weight(self, handle: Any, clause_idx: int, obj_idx: int) -> int:
        h = self._live(handle)
        row = h.rows[clause_idx]
        if row.hard:
            return h.top
        return row.weights[obj_idx] if obj_idx < len(row.weights) else 0

    def prepro_label(self, handle: Any, idx: int) -> int:
        return self._live(handle).labels()[idx]

    def prepro_fixed_lit(self, handle: Any, idx: int) -> int:
        return self._live(handle).fixed[idx]

    def original_variables(self, handle: Any) -> int:
        return self._live(handle).max_var

    # Reconstruction
    def assignment_add(self, handle: Any, lit: int) -> None:
        self._live(handle).assignment.append(lit)

    def reconstruct(self, handle: Any) -> None:
        h = self._live(handle)
        values = {abs(l): l > 0 for l in h.assignment if l != 0}
        h.assignment = []
        for var in range(1, h.max_var + 1):
            values.setdefault(var, False)
        for event in reversed(h.trace):
            if event[0] == "fix":
                lit = event[1]
                values[abs(lit)] = lit > 0
            else:
                _, clause, blocking = event
                if not any(values.get(abs(m), False) == (m > 0) for m in clause):
                    values[abs(blocking)] = blocking > 0
        h.reconstructed = values

    def reconstructed_val(self, handle: Any, lit: int) -> bool:
        value = self._live(handle).reconstructed.get(abs(lit), False)
        return value if lit > 0 else not value

    # Incremental mutation
    def add_var(self, handle: Any) -> int:
        h = self._live(handle)
        if not h.mutable:
            return 0
        h.max_var += 1
        return h.max_var

    def add_lit(self, handle: Any, lit: int) -> bool:
        h = self._live(handle)
        if lit != 0:
            h.add_buffer.append(lit)
            return True
        lits, h.add_buffer = h.add_buffer, []
        if not h.mutable or any(abs(l) > h.max_var for l in lits):
            return False
        h.rows.append(_Row(lits))
        return True

    def add_label(self, handle: Any, lit: int, weight: int) -> int:
        h = self._live(handle)
        if not h.mutable or h.n_obj == 0 or lit == 0 or abs(lit) > h.max_var:
            return 0
        if any(abs(l) == abs(lit) for l in h.labels()):
            return 0
        if h.top + weight > U64_MAX:
            return 0
        h.rows.append(_Row([lit], [weight] + [0] * (h.n_obj - 1), label=True))
        # Keep the top weight above every combination of soft weights
        h.top += weight
        return lit

    def alter_weight(self, handle: Any, label: int, weight: int) -> bool:
        h = self._live(handle)
        row = h.label_row(label)
        if not h.mutable or row is None:
            return False
        obj = next((i for i, w in enumerate(row.weights) if w), 0)
        if weight > row.weights[obj]:
            if h.top + weight - row.weights[obj] > U64_MAX:
                return False
            h.top += weight - row.weights[obj]
        row.weights[obj] = weight
        return True

    def label_to_var(self, handle: Any, label: int) -> bool:
        h = self._live(handle)
        row = h.label_row(label)
        if not h.mutable or row is None:
            return False
        h.rows.remove(row)
        return True

    def reset_removed_weight(self, handle: Any) -> bool:
        h = self._live(handle)
        if not h.finalized:
            return False
        h.removed = [0] * h.n_obj
        return True

    def removed_weight(self, handle: Any, obj_idx: int) -> int:
        h = self._live(handle)
        return h.removed[obj_idx] if obj_idx < len(h.removed) else 0

    # Options
    def set_option(self, handle: Any, option: str, value: Union[bool, int]) -> None:
        h = self._live(handle)
        if option in BOOL_OPTIONS:
            h.options[option] = bool(value)
        elif option in INT_OPTIONS:
            h.options[option] = int(value)
        else:
            raise ValidationError(f"Unknown option '{option}'")

    # Diagnostics
    def print_instance(self, handle: Any) -> None:
        h = self._live(handle)
        print(f"p wcnf {h.max_var} {len(h.rows)} {h.top}", file=sys.stdout)
        for i, row in enumerate(h.rows):
            n = max(h.n_obj, 1)
            weights = [self.prepro_weight(h, i, obj) for obj in range(n)]
            print(" ".join(str(x) for x in weights + row.lits + [0]), file=sys.stdout)

    def print_solution(self, handle: Any, weight: int) -> None:
        h = self._live(handle)
        self.reconstruct(h)
        lits = [v if h.reconstructed[v] else -v for v in range(1, h.max_var + 1)]
        print(f"o {weight}", file=sys.stdout)
        print("s OPTIMUM FOUND", file=sys.stdout)
        print("v " + " ".join(str(l) for l in lits), file=sys.stdout)

    def print_map(self, handle: Any) -> None:
        h = self._live(handle)
        print(f"c original variables {h.max_var}", file=sys.stdout)
        for event in h.trace:
            if event[0] == "fix":
                print(f"c fix {event[1]}", file=sys.stdout)
            else:
                clause = " ".join(str(l) for l in event[1])
                print(f"c bce {event[2]} : {clause} 0", file=sys.stdout)

    def print_technique_log(self, handle: Any) -> None:
        for record in self._live(handle).technique_log:
            print(
                f"c {record.technique} changed={int(record.changed)} "
                f"{record.clauses_before}->{record.clauses_after} "
                f"fixed={record.fixed_after} {record.seconds:.6f}s",
                file=sys.stdout,
            )

    def print_info_log(self, handle: Any) -> None:
        for line in self._live(handle).info_log:
            print(f"c {line}", file=sys.stdout)

    def print_stats(self, handle: Any) -> None:
        h = self._live(handle)
        print(f"c clauses {len(h.rows)}", file=sys.stdout)
        print(f"c labels {len(h.labels())}", file=sys.stdout)
        print(f"c fixed {len(h.fixed)}", file=sys.stdout)
        print(f"c top weight {h.top}", file=sys.stdout)
        print(f"c removed weight {' '.join(str(w) for w in h.removed)}", file=sys.stdout)
        runs: Dict[str, int] = {}
        for record in h.technique_log:
            runs[record.technique] = runs.get(record.technique, 0) + 1
        for t in sorted(runs):
            print(f"c technique {t} runs {runs[t]}", file=sys.stdout)
