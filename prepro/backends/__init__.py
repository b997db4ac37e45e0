from prepro.backends.base import EngineBackend
from prepro.backends.reference import ReferenceBackend, parse_techniques
from prepro.backends.native import MaxPreBackend
from prepro.backends.registry import BackendRegistry, default_registry, get_backend

__all__ = [
    "EngineBackend", "ReferenceBackend", "parse_techniques", "MaxPreBackend",
    "BackendRegistry", "default_registry", "get_backend"
]
