"""
Binding to the MaxPre C interface (``cpreprocessorinterface``) of a
``libmaxpre`` shared library, loaded with ctypes.

The library is located through an explicit path (``PREPRO_LIBRARY`` or the
``library_path`` config entry) or, failing that, through the platform's
library search path.
"""
import ctypes
import ctypes.util
import os
import sys
from pathlib import Path
from typing import Any, Optional, Union

from prepro.backends.base import EngineBackend, BOOL_OPTIONS
from prepro.core.errors import BackendUnavailableError, RejectedError, ValidationError
from prepro.core.logging import get_logger
from prepro.core.types import encode_bool, decode_bool, decode_signed_bool

logger = get_logger(__name__)

_OPTION_SETTERS = {
    "bve_gate_extraction": "cmaxpre_set_bve_gate_extraction",
    "label_matching": "cmaxpre_set_label_matching",
    "skip_technique": "cmaxpre_set_skip_technique",
    "bve_sort_max_first": "cmaxpre_set_bve_sort_max_first",
    "bve_local_grow_limit": "cmaxpre_set_bve_local_grow_limit",
    "bve_global_grow_limit": "cmaxpre_set_bve_global_grow_limit",
    "max_bbtms_vars": "cmaxpre_set_max_bbtms_vars",
    "harden_in_model_search": "cmaxpre_set_harden_in_model_search",
    "model_search_iter_limit": "cmaxpre_set_model_search_iter_limit",
}


def _find_library(library_path: Optional[str] = None) -> Optional[Path]:
    """Find the MaxPre shared library."""
    explicit = library_path or os.environ.get("PREPRO_LIBRARY")
    if explicit:
        path = Path(explicit)
        return path if path.exists() else None
    found = ctypes.util.find_library("maxpre")
    if found:
        return Path(found)
    return None


def _load_library(library_path: Optional[str] = None) -> ctypes.CDLL:
    """Load the MaxPre shared library and declare the function signatures."""
    lib_path = _find_library(library_path)
    if lib_path is None:
        raise BackendUnavailableError(
            "MaxPre library not found. Build libmaxpre as a shared library and "
            "point PREPRO_LIBRARY at it."
        )
    try:
        lib = ctypes.CDLL(str(lib_path))
    except OSError as e:
        raise BackendUnavailableError(f"Failed to load {lib_path}: {e}") from e

    handle = ctypes.c_void_p
    c_int = ctypes.c_int
    c_uint = ctypes.c_uint
    c_u64 = ctypes.c_uint64

    def declare(fn_name, argtypes, restype):
        try:
            fn = getattr(lib, fn_name)
        except AttributeError as e:
            raise BackendUnavailableError(f"{lib_path} does not export {fn_name}") from e
        fn.argtypes = argtypes
        fn.restype = restype

    declare("cmaxpre_signature", [], ctypes.c_char_p)
    declare("cmaxpre_init_start", [c_u64, c_int], handle)
    declare("cmaxpre_init_add_weight", [handle, c_u64], None)
    declare("cmaxpre_init_add_lit", [handle, c_int], None)
    declare("cmaxpre_init_finalize", [handle], None)
    declare("cmaxpre_release", [handle], None)

    declare("cmaxpre_preprocess", [handle, ctypes.c_char_p, c_int, ctypes.c_double, c_int], None)

    declare("cmaxpre_get_top_weight", [handle], c_u64)
    declare("cmaxpre_get_n_prepro_clauses", [handle], c_uint)
    declare("cmaxpre_get_n_prepro_labels", [handle], c_uint)
    declare("cmaxpre_get_n_prepro_fixed", [handle], c_uint)
    declare("cmaxpre_get_prepro_lit", [handle, c_uint, c_uint], c_int)
    declare("cmaxpre_get_prepro_weight", [handle, c_uint, c_uint], c_u64)
    declare("cmaxpre_get_prepro_label", [handle, c_uint], c_int)
    declare("cmaxpre_get_prepro_fixed_lit", [handle, c_uint], c_int)
    declare("cmaxpre_get_original_variables", [handle], c_int)

    declare("cmaxpre_assignment_add", [handle, c_int], None)
    declare("cmaxpre_reconstruct", [handle], None)
    declare("cmaxpre_reconstructed_val", [handle, c_int], c_int)

    declare("cmaxpre_add_var", [handle, c_u64], c_int)
    declare("cmaxpre_add_lit", [handle, c_int], c_int)
    declare("cmaxpre_add_label", [handle, c_int, c_u64], c_int)
    declare("cmaxpre_alter_weight", [handle, c_int, c_u64], c_int)
    declare("cmaxpre_label_to_var", [handle, c_int], c_int)
    declare("cmaxpre_reset_removed_weight", [handle], c_int)
    declare("cmaxpre_get_removed_weight", [handle, c_uint], c_u64)

    for option, fn_name in _OPTION_SETTERS.items():
        declare(fn_name, [handle, c_int], None)

    declare("cmaxpre_print_instance_stdout", [handle], None)
    declare("cmaxpre_print_solution_stdout", [handle, c_u64], None)
    declare("cmaxpre_print_map_stdout", [handle], None)
    declare("cmaxpre_print_technique_log_stdout", [handle], None)
    declare("cmaxpre_print_info_log_stdout", [handle], None)
    declare("cmaxpre_print_preprocessor_stats_stdout", [handle], None)

    logger.debug(f"Loaded MaxPre from {lib_path}")
    return lib


class MaxPreBackend(EngineBackend):
    """The native MaxPre engine."""

    def __init__(self, library_path: Optional[str] = None):
        self._lib = _load_library(library_path)

    @property
    def name(self) -> str:
        return "maxpre"

    def signature(self) -> bytes:
        return self._lib.cmaxpre_signature() or b""

    def open(self, top_weight: int, inprocessing: bool, n_objectives: int = 0) -> Any:
        # cmaxpre_init_start has no objective count; MaxPre takes it from the weight rows
        handle = self._lib.cmaxpre_init_start(top_weight, encode_bool(inprocessing))
        if not handle:
            raise RejectedError("MaxPre refused to start a session")
        return handle

    def init_add_weight(self, handle: Any, weight: int) -> None:
        self._lib.cmaxpre_init_add_weight(handle, weight)

    def init_add_lit(self, handle: Any, lit: int) -> None:
        self._lib.cmaxpre_init_add_lit(handle, lit)

    def init_finalize(self, handle: Any) -> None:
        self._lib.cmaxpre_init_finalize(handle)

    def release(self, handle: Any) -> None:
        self._lib.cmaxpre_release(handle)

    def preprocess(self, handle: Any, techniques: str, log_level: int,
                   time_limit: float, add_removed_weight: bool) -> None:
        # Native output goes to the C stdout; keep ordering with python's buffer
        sys.stdout.flush()
        self._lib.cmaxpre_preprocess(
            handle,
            techniques.encode("utf-8"),
            log_level,
            time_limit,
            encode_bool(add_removed_weight),
        )

    def top_weight(self, handle: Any) -> int:
        return self._lib.cmaxpre_get_top_weight(handle)

    def n_prepro_clauses(self, handle: Any) -> int:
        return self._lib.cmaxpre_get_n_prepro_clauses(handle)

    def n_prepro_labels(self, handle: Any) -> int:
        return self._lib.cmaxpre_get_n_prepro_labels(handle)

    def n_prepro_fixed(self, handle: Any) -> int:
        return self._lib.cmaxpre_get_n_prepro_fixed(handle)

    def prepro_lit(self, handle: Any, clause_idx: int, lit_idx: int) -> int:
        return self._lib.cmaxpre_get_prepro_lit(handle, clause_idx, lit_idx)

    def prepro_weight(self, handle: Any, clause_idx: int, obj_idx: int) -> int:
        return self._lib.cmaxpre_get_prepro_weight(handle, clause_idx, obj_idx)

    def prepro_label(self, handle: Any, idx: int) -> int:
        return self._lib.cmaxpre_get_prepro_label(handle, idx)

    def prepro_fixed_lit(self, handle: Any, idx: int) -> int:
        return self._lib.cmaxpre_get_prepro_fixed_lit(handle, idx)

    def original_variables(self, handle: Any) -> int:
        return self._lib.cmaxpre_get_original_variables(handle)

    def assignment_add(self, handle: Any, lit: int) -> None:
        self._lib.cmaxpre_assignment_add(handle, lit)

    def reconstruct(self, handle: Any) -> None:
        self._lib.cmaxpre_reconstruct(handle)

    def reconstructed_val(self, handle: Any, lit: int) -> bool:
        return decode_signed_bool(self._lib.cmaxpre_reconstructed_val(handle, lit))

    def add_var(self, handle: Any) -> int:
        return self._lib.cmaxpre_add_var(handle, 0)

    def add_lit(self, handle: Any, lit: int) -> bool:
        return decode_bool(self._lib.cmaxpre_add_lit(handle, lit))

    def add_label(self, handle: Any, lit: int, weight: int) -> int:
        return self._lib.cmaxpre_add_label(handle, lit, weight)

    def alter_weight(self, handle: Any, label: int, weight: int) -> bool:
        return decode_bool(self._lib.cmaxpre_alter_weight(handle, label, weight))

    def label_to_var(self, handle: Any, label: int) -> bool:
        return decode_bool(self._lib.cmaxpre_label_to_var(handle, label))

    def reset_removed_weight(self, handle: Any) -> bool:
        return decode_bool(self._lib.cmaxpre_reset_removed_weight(handle))

    def removed_weight(self, handle: Any, obj_idx: int) -> int:
        return self._lib.cmaxpre_get_removed_weight(handle, obj_idx)

    def set_option(self, handle: Any, option: str, value: Union[bool, int]) -> None:
        if option not in _OPTION_SETTERS:
            raise ValidationError(f"Unknown MaxPre option '{option}'")
        if option in BOOL_OPTIONS:
            value = encode_bool(bool(value))
        getattr(self._lib, _OPTION_SETTERS[option])(handle, int(value))

    def print_instance(self, handle: Any) -> None:
        sys.stdout.flush()
        self._lib.cmaxpre_print_instance_stdout(handle)

    def print_solution(self, handle: Any, weight: int) -> None:
        sys.stdout.flush()
        self._lib.cmaxpre_print_solution_stdout(handle, weight)

    def print_map(self, handle: Any) -> None:
        sys.stdout.flush()
        self._lib.cmaxpre_print_map_stdout(handle)

    def print_technique_log(self, handle: Any) -> None:
        sys.stdout.flush()
        self._lib.cmaxpre_print_technique_log_stdout(handle)

    def print_info_log(self, handle: Any) -> None:
        sys.stdout.flush()
        self._lib.cmaxpre_print_info_log_stdout(handle)

    def print_stats(self, handle: Any) -> None:
        sys.stdout.flush()
        self._lib.cmaxpre_print_preprocessor_stats_stdout(handle)
