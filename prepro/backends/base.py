import abc
from typing import Any, Union

BOOL_OPTIONS = frozenset({
    "bve_gate_extraction",
    "label_matching",
    "bve_sort_max_first",
    "harden_in_model_search",
})
INT_OPTIONS = frozenset({
    "skip_technique",
    "bve_local_grow_limit",
    "bve_global_grow_limit",
    "max_bbtms_vars",
    "model_search_iter_limit",
})


class EngineBackend(abc.ABC):
    """
    The preprocessing engine interface.

    Mirrors the engine's C interface: every call takes the opaque handle
    returned by `open`, literals are DIMACS integers and a `0` literal
    terminates a clause. Truth values crossing this boundary are python
    bools; backends convert them at their own edge.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        pass

    @abc.abstractmethod
    def signature(self) -> bytes:
        """Raw identity/version string of the engine."""
        pass

    # Construction
    @abc.abstractmethod
    def open(self, top_weight: int, inprocessing: bool, n_objectives: int = 0) -> Any:
        """
        Starts a session. `n_objectives` is the declared objective count;
        engines that only learn it from the streamed weight rows ignore it.
        """
        pass

    @abc.abstractmethod
    def init_add_weight(self, handle: Any, weight: int) -> None:
        pass

    @abc.abstractmethod
    def init_add_lit(self, handle: Any, lit: int) -> None:
        pass

    @abc.abstractmethod
    def init_finalize(self, handle: Any) -> None:
        pass

    @abc.abstractmethod
    def release(self, handle: Any) -> None:
        pass

    # Preprocessing
    @abc.abstractmethod
    def preprocess(self, handle: Any, techniques: str, log_level: int,
                   time_limit: float, add_removed_weight: bool) -> None:
        pass

    # Readback
    @abc.abstractmethod
    def top_weight(self, handle: Any) -> int:
        pass

    @abc.abstractmethod
    def n_prepro_clauses(self, handle: Any) -> int:
        pass

    @abc.abstractmethod
    def n_prepro_labels(self, handle: Any) -> int:
        pass

    @abc.abstractmethod
    def n_prepro_fixed(self, handle: Any) -> int:
        pass

    @abc.abstractmethod
    def prepro_lit(self, handle: Any, clause_idx: int, lit_idx: int) -> int:
        """Literal `lit_idx` of clause `clause_idx`, `0` past the end."""
        pass

    @abc.abstractmethod
    def prepro_weight(self, handle: Any, clause_idx: int, obj_idx: int) -> int:
        pass

    @abc.abstractmethod
    def prepro_label(self, handle: Any, idx: int) -> int:
        pass

    @abc.abstractmethod
    def prepro_fixed_lit(self, handle: Any, idx: int) -> int:
        pass

    @abc.abstractmethod
    def original_variables(self, handle: Any) -> int:
        pass

    # Reconstruction
    @abc.abstractmethod
    def assignment_add(self, handle: Any, lit: int) -> None:
        pass

    @abc.abstractmethod
    def reconstruct(self, handle: Any) -> None:
        pass

    @abc.abstractmethod
    def reconstructed_val(self, handle: Any, lit: int) -> bool:
        pass

    # Incremental mutation
    @abc.abstractmethod
    def add_var(self, handle: Any) -> int:
        """New variable, or `0` if the engine rejects the allocation."""
        pass

    @abc.abstractmethod
    def add_lit(self, handle: Any, lit: int) -> bool:
        """Streams one literal; on the `0` terminator returns whether the clause was accepted."""
        pass

    @abc.abstractmethod
    def add_label(self, handle: Any, lit: int, weight: int) -> int:
        pass

    @abc.abstractmethod
    def alter_weight(self, handle: Any, label: int, weight: int) -> bool:
        pass

    @abc.abstractmethod
    def label_to_var(self, handle: Any, label: int) -> bool:
        pass

    @abc.abstractmethod
    def reset_removed_weight(self, handle: Any) -> bool:
        pass

    @abc.abstractmethod
    def removed_weight(self, handle: Any, obj_idx: int) -> int:
        pass

    # Options
    @abc.abstractmethod
    def set_option(self, handle: Any, option: str, value: Union[bool, int]) -> None:
        pass

    # Diagnostics, written to standard output
    @abc.abstractmethod
    def print_instance(self, handle: Any) -> None:
        pass

    @abc.abstractmethod
    def print_solution(self, handle: Any, weight: int) -> None:
        pass

    @abc.abstractmethod
    def print_map(self, handle: Any) -> None:
        pass

    @abc.abstractmethod
    def print_technique_log(self, handle: Any) -> None:
        pass

    @abc.abstractmethod
    def print_info_log(self, handle: Any) -> None:
        pass

    @abc.abstractmethod
    def print_stats(self, handle: Any) -> None:
        pass
