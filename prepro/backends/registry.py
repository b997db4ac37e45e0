from typing import Callable, Dict, List, Optional
from prepro.backends.base import EngineBackend
from prepro.backends.reference import ReferenceBackend
from prepro.backends.native import MaxPreBackend
from prepro.config import SessionConfig
from prepro.core.errors import BackendUnavailableError
from prepro.core.logging import get_logger

logger = get_logger(__name__)


class BackendRegistry:
    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config if config else SessionConfig.from_env_or_file()
        self._backends: Dict[str, EngineBackend] = {}
        self._factories: Dict[str, Callable[[], EngineBackend]] = {}
        self.register(ReferenceBackend())
        # The native library is only loaded on first use
        self.register_factory("maxpre", lambda: MaxPreBackend(self.config.library_path))

    def register(self, backend: EngineBackend):
        self._backends[backend.name] = backend

    def register_factory(self, name: str, factory: Callable[[], EngineBackend]):
        self._factories[name] = factory

    def get(self, name: Optional[str] = None) -> EngineBackend:
        name = name or self.config.backend
        if name in self._backends:
            return self._backends[name]
        if name in self._factories:
            backend = self._factories[name]()
            logger.info(f"Loaded backend '{name}'")
            self.register(backend)
            return backend
        raise BackendUnavailableError(f"Backend '{name}' not found.")

    def available(self, name: str) -> bool:
        try:
            self.get(name)
        except BackendUnavailableError as e:
            logger.debug(f"Backend '{name}' unavailable: {e}")
            return False
        return True

    def list_backends(self) -> List[str]:
        return sorted(set(self._backends) | set(self._factories))


_default_registry: Optional[BackendRegistry] = None

def default_registry() -> BackendRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = BackendRegistry()
    return _default_registry

def get_backend(name: Optional[str] = None) -> EngineBackend:
    return default_registry().get(name)
