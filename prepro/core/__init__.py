"""
Core module for prepro.
Provides error handling, logging and the literal/clause/assignment types.
"""
from prepro.core.errors import (
    PreproError, ValidationError, RejectedError, UnknownLabelError,
    EngineContractError, SessionClosedError, ConcurrentAccessError, BackendUnavailableError
)
from prepro.core.logging import get_logger
from prepro.core.types import (
    CnfVar, DimacsLit, Weight, Lit, LitLike, Clause, Assignment,
    encode_lit, decode_lit, encode_bool, decode_bool, decode_signed_bool, U64_MAX,
    as_lit, make_clause, clause_to_ipasir, validate_clauses
)

__all__ = [
    "PreproError", "ValidationError", "RejectedError", "UnknownLabelError",
    "EngineContractError", "SessionClosedError", "ConcurrentAccessError", "BackendUnavailableError",
    "get_logger",
    "CnfVar", "DimacsLit", "Weight", "Lit", "LitLike", "Clause", "Assignment",
    "encode_lit", "decode_lit", "encode_bool", "decode_bool", "decode_signed_bool", "U64_MAX",
    "as_lit", "make_clause", "clause_to_ipasir", "validate_clauses"
]
