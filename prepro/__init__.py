"""
prepro: a session layer between weighted (multi-objective) MaxSAT instances
and a preprocessing engine, with reconstruction of solutions on the original
variables.
"""

__version__ = "0.1.0"

from prepro.core.errors import (
    PreproError, ValidationError, RejectedError, UnknownLabelError,
    EngineContractError, SessionClosedError, ConcurrentAccessError, BackendUnavailableError
)
from prepro.core.types import Lit, Clause, Assignment, encode_lit, decode_lit, make_clause
from prepro.config import SessionConfig, PreproOptions
from prepro.extract import PreproInstance
from prepro.instances import (
    CardConstraint, PBConstraint, SatInstance, Objective, OptInstance, MultiOptInstance
)
from prepro.session import Session

__all__ = [
    "PreproError", "ValidationError", "RejectedError", "UnknownLabelError",
    "EngineContractError", "SessionClosedError", "ConcurrentAccessError", "BackendUnavailableError",
    "Lit", "Clause", "Assignment", "encode_lit", "decode_lit", "make_clause",
    "SessionConfig", "PreproOptions",
    "PreproInstance",
    "CardConstraint", "PBConstraint", "SatInstance", "Objective", "OptInstance", "MultiOptInstance",
    "Session",
]
