import threading
import warnings
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Union
from pydantic import ValidationError as PydanticValidationError
from pysat.formula import WCNF

from prepro.backends.base import EngineBackend
from prepro.backends.registry import BackendRegistry, default_registry
from prepro.builder import InitBuilder, SoftClauses
from prepro.config import PreproOptions, SessionConfig
from prepro.core.errors import (
    ConcurrentAccessError, EngineContractError, RejectedError, SessionClosedError,
    UnknownLabelError, ValidationError
)
from prepro.core.logging import get_logger
from prepro.core.types import (
    U64_MAX, Assignment, Lit, LitLike, as_lit, decode_lit, encode_lit, make_clause
)
from prepro.extract import PreproInstance, extract_instance
from prepro.instances import (
    CardEncoder, MultiOptInstance, Objective, OptInstance, PBEncoder, SatInstance, decompose
)

logger = get_logger(__name__)

BackendLike = Union[str, EngineBackend, None]


def resolve_backend(backend: BackendLike, config: Optional[SessionConfig] = None) -> EngineBackend:
    if isinstance(backend, EngineBackend):
        return backend
    if config is not None:
        return BackendRegistry(config).get(backend)
    return default_registry().get(backend)


class Session:
    """
    One preprocessing run.

    The session owns a single engine handle. It is built from hard clauses
    and an ordered list of objectives (each a mapping from clause to weight),
    then preprocessed, read back and used to reconstruct solutions. The
    handle is released exactly once, by `close()` or by leaving a `with`
    block; after that every operation raises `SessionClosedError`.

    Mutating operations require exclusive access: a second concurrent
    mutating call raises `ConcurrentAccessError`, and so does a read issued
    while a mutating call is running.
    """

    def __init__(self, hards: Iterable[Iterable[LitLike]] = (),
                 softs: Sequence[SoftClauses] = (),
                 inprocessing: bool = False,
                 backend: BackendLike = None,
                 config: Optional[SessionConfig] = None,
                 offsets: Optional[Sequence[int]] = None):
        self._handle: Any = None
        self._closed = True
        self._lock = threading.Lock()
        self.config = config if config else SessionConfig.from_env_or_file()
        self.backend = resolve_backend(backend, config)
        self.inprocessing = inprocessing

        builder = InitBuilder(self.backend, hards, softs, inprocessing)
        self._n_obj = builder.n_objectives
        if offsets is not None and len(offsets) != self._n_obj:
            raise ValidationError(f"Got {len(offsets)} offsets for {self._n_obj} objectives")
        self._offsets = list(offsets) if offsets is not None else [0] * self._n_obj
        self._handle = builder.build()
        self._closed = False

    # Alternative constructors
    @classmethod
    def from_sat_instance(cls, inst: SatInstance, inprocessing: bool = False,
                          card_encoder: Optional[CardEncoder] = None,
                          pb_encoder: Optional[PBEncoder] = None, **kwargs) -> "Session":
        hards, _, _ = decompose(MultiOptInstance(constraints=inst), card_encoder, pb_encoder)
        return cls(hards, [], inprocessing, **kwargs)

    @classmethod
    def from_opt_instance(cls, inst: OptInstance, inprocessing: bool = False,
                          card_encoder: Optional[CardEncoder] = None,
                          pb_encoder: Optional[PBEncoder] = None, **kwargs) -> "Session":
        multi = MultiOptInstance(constraints=inst.constraints, objectives=[inst.objective])
        hards, softs, offsets = decompose(multi, card_encoder, pb_encoder)
        return cls(hards, softs, inprocessing, offsets=offsets, **kwargs)

    @classmethod
    def from_multiopt_instance(cls, inst: MultiOptInstance, inprocessing: bool = False,
                               card_encoder: Optional[CardEncoder] = None,
                               pb_encoder: Optional[PBEncoder] = None, **kwargs) -> "Session":
        hards, softs, offsets = decompose(inst, card_encoder, pb_encoder)
        return cls(hards, softs, inprocessing, offsets=offsets, **kwargs)

    @classmethod
    def from_wcnf(cls, formula: WCNF, inprocessing: bool = False, **kwargs) -> "Session":
        softs = {}
        for clause, weight in zip(formula.soft, formula.wght):
            key = make_clause(clause)
            softs[key] = softs.get(key, 0) + weight
        return cls(formula.hard, [softs], inprocessing, **kwargs)

    # Lifecycle
    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        if not self._lock.acquire(blocking=False):
            raise ConcurrentAccessError("Cannot close a session while another call is running")
        try:
            self.backend.release(self._handle)
            self._handle = None
            self._closed = True
        finally:
            self._lock.release()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if not getattr(self, "_closed", True):
            warnings.warn(f"Unclosed preprocessing session {self!r}", ResourceWarning, source=self)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Session backend={self.backend.name} objectives={self._n_obj} {state}>"

    def _live(self) -> Any:
        if self._closed:
            raise SessionClosedError("Session has been released")
        return self._handle

    def _shared(self) -> Any:
        handle = self._live()
        if self._lock.locked():
            raise ConcurrentAccessError("Session is being mutated; reads must not overlap a mutating call")
        return handle

    @contextmanager
    def _exclusive(self) -> Iterator[Any]:
        handle = self._live()
        if not self._lock.acquire(blocking=False):
            raise ConcurrentAccessError("Session is already in use by another mutating call")
        try:
            yield handle
        finally:
            self._lock.release()

    # Engine identity
    @staticmethod
    def engine_signature(backend: BackendLike = None) -> str:
        raw = resolve_backend(backend).signature()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EngineContractError(f"Engine signature is not valid UTF-8: {raw!r}") from e

    def signature(self) -> str:
        return self.engine_signature(self.backend)

    # Preprocessing
    def preprocess(self, techniques: Optional[str] = None, log_level: Optional[int] = None,
                   time_limit: Optional[float] = None, add_removed_weight: bool = False) -> None:
        """
        Runs the selected techniques on the session in place.

        Unset arguments come from the session config. With
        `add_removed_weight` the weight retired by this run is folded into
        the top weight.
        """
        techniques = techniques if techniques is not None else self.config.techniques
        log_level = log_level if log_level is not None else self.config.log_level
        time_limit = time_limit if time_limit is not None else self.config.time_limit
        if time_limit < 0:
            raise ValidationError(f"Time limit must be non-negative, got {time_limit}")
        with self._exclusive() as handle:
            logger.debug(f"Preprocessing with '{techniques}' (time limit {time_limit}s)")
            self.backend.preprocess(handle, techniques, log_level, time_limit, add_removed_weight)

    # Readback
    @property
    def n_objectives(self) -> int:
        return self._n_obj

    def top_weight(self) -> int:
        return self.backend.top_weight(self._shared())

    def n_prepro_clauses(self) -> int:
        return self.backend.n_prepro_clauses(self._shared())

    def n_prepro_labels(self) -> int:
        return self.backend.n_prepro_labels(self._shared())

    def n_prepro_fixed_lits(self) -> int:
        return self.backend.n_prepro_fixed(self._shared())

    def prepro_instance(self) -> PreproInstance:
        return extract_instance(self.backend, self._shared(), self._n_obj)

    def prepro_labels(self) -> List[Lit]:
        handle = self._shared()
        return [decode_lit(self.backend.prepro_label(handle, idx))
                for idx in range(self.backend.n_prepro_labels(handle))]

    def prepro_fixed_lits(self) -> List[Lit]:
        handle = self._shared()
        return [decode_lit(self.backend.prepro_fixed_lit(handle, idx))
                for idx in range(self.backend.n_prepro_fixed(handle))]

    def max_orig_var(self) -> int:
        return abs(self.backend.original_variables(self._shared()))

    def removed_weight(self) -> List[int]:
        handle = self._shared()
        return [self.backend.removed_weight(handle, obj_idx) for obj_idx in range(self._n_obj)]

    # Reconstruction
    def _push_assignment(self, handle: Any, assignment: Union[Assignment, Iterable[LitLike]]) -> None:
        if not isinstance(assignment, Assignment):
            assignment = Assignment(assignment)
        for lit in assignment:
            self.backend.assignment_add(handle, encode_lit(lit))

    def reconstruct(self, assignment: Union[Assignment, Iterable[LitLike]]) -> Assignment:
        """
        Extends an assignment on the preprocessed variables to a total
        assignment on variables 1..max_orig_var().
        """
        with self._exclusive() as handle:
            self._push_assignment(handle, assignment)
            self.backend.reconstruct(handle)
            max_var = abs(self.backend.original_variables(handle))
            return Assignment(
                Lit(var, not self.backend.reconstructed_val(handle, var))
                for var in range(1, max_var + 1)
            )

    # Incremental mutation
    def add_var(self) -> int:
        with self._exclusive() as handle:
            var = self.backend.add_var(handle)
        if var == 0:
            raise RejectedError("Engine refused to add a variable")
        return abs(var)

    def add_clause(self, clause: Iterable[LitLike]) -> None:
        clause = make_clause(clause)
        with self._exclusive() as handle:
            for lit in clause:
                self.backend.add_lit(handle, encode_lit(lit))
            accepted = self.backend.add_lit(handle, 0)
        if not accepted:
            raise RejectedError(f"Engine refused clause {list(clause)}")

    def add_label(self, lit: LitLike, weight: int) -> Lit:
        lit = as_lit(lit)
        _check_weight(weight)
        with self._exclusive() as handle:
            label = self.backend.add_label(handle, encode_lit(lit), weight)
        if label == 0:
            raise RejectedError(f"Engine refused label {lit!r}")
        return decode_lit(label)

    def alter_weight(self, label: LitLike, weight: int) -> None:
        label = as_lit(label)
        _check_weight(weight)
        with self._exclusive() as handle:
            ok = self.backend.alter_weight(handle, encode_lit(label), weight)
        if not ok:
            raise UnknownLabelError(f"No label {label!r}")

    def label_to_var(self, label: LitLike) -> None:
        label = as_lit(label)
        with self._exclusive() as handle:
            ok = self.backend.label_to_var(handle, encode_lit(label))
        if not ok:
            raise UnknownLabelError(f"No label {label!r}")

    def reset_removed_weight(self) -> None:
        with self._exclusive() as handle:
            ok = self.backend.reset_removed_weight(handle)
        if not ok:
            raise RejectedError("Engine refused to reset the removed weight")

    # Options
    def set_options(self, options: Union[PreproOptions, Mapping[str, Any]]) -> None:
        if not isinstance(options, PreproOptions):
            try:
                options = PreproOptions(**options)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid preprocessor options: {e}") from e
        with self._exclusive() as handle:
            for name, value in options.present():
                logger.debug(f"Setting option {name}={value}")
                self.backend.set_option(handle, name, value)

    # Instance level readback
    def prepro_sat_instance(self) -> SatInstance:
        if self._n_obj:
            raise ValidationError(f"Session has {self._n_obj} objectives")
        return SatInstance.from_clauses(self.prepro_instance().hards)

    def prepro_opt_instance(self) -> OptInstance:
        if self._n_obj != 1:
            raise ValidationError(f"Session has {self._n_obj} objectives, expected 1")
        multi = self.prepro_multiopt_instance()
        return OptInstance(constraints=multi.constraints, objective=multi.objectives[0])

    def prepro_multiopt_instance(self) -> MultiOptInstance:
        inst = self.prepro_instance()
        objectives = [
            Objective.from_soft_clauses(
                inst.objective(idx),
                offset=self._offsets[idx] + inst.removed_weight[idx],
            )
            for idx in range(self._n_obj)
        ]
        return MultiOptInstance(constraints=SatInstance.from_clauses(inst.hards), objectives=objectives)

    # Diagnostics
    def print_instance(self) -> None:
        self.backend.print_instance(self._shared())

    def print_solution(self, assignment: Union[Assignment, Iterable[LitLike]], weight: int) -> None:
        with self._exclusive() as handle:
            self._push_assignment(handle, assignment)
            self.backend.print_solution(handle, weight)

    def print_map(self) -> None:
        self.backend.print_map(self._shared())

    def print_technique_log(self) -> None:
        self.backend.print_technique_log(self._shared())

    def print_info_log(self) -> None:
        self.backend.print_info_log(self._shared())

    def print_stats(self) -> None:
        self.backend.print_stats(self._shared())


def _check_weight(weight: int) -> None:
    if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
        raise ValidationError(f"Weight must be a non-negative integer, got {weight!r}")
    if weight > U64_MAX:
        raise ValidationError(f"Weight {weight} does not fit into 64 bits")
