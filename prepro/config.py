import dataclasses
import json
import os
from typing import Any, Dict, Iterator, Optional, Tuple
from pydantic import BaseModel, ConfigDict
from prepro.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TECHNIQUES = "[bu]#[buvsrgc]"
DEFAULT_TIME_LIMIT = 1e9


@dataclasses.dataclass
class SessionConfig:
    backend: str = "reference"
    techniques: str = DEFAULT_TECHNIQUES
    log_level: int = 0
    time_limit: float = DEFAULT_TIME_LIMIT
    library_path: Optional[str] = None

    @staticmethod
    def from_env_or_file() -> 'SessionConfig':
        config = SessionConfig()

        # 1. Config file
        config_path = os.environ.get("PREPRO_CONFIG_PATH")
        if config_path and os.path.exists(config_path):
            try:
                with open(config_path, 'r') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable config file {config_path}: {e}")
            else:
                config = SessionConfig(
                    backend=data.get("backend", config.backend),
                    techniques=data.get("techniques", config.techniques),
                    log_level=int(data.get("log_level", config.log_level)),
                    time_limit=float(data.get("time_limit", config.time_limit)),
                    library_path=data.get("library_path", config.library_path),
                )

        # 2. Env vars take precedence
        env_backend = os.environ.get("PREPRO_BACKEND")
        if env_backend:
            config.backend = env_backend
        env_techniques = os.environ.get("PREPRO_TECHNIQUES")
        if env_techniques:
            config.techniques = env_techniques
        env_library = os.environ.get("PREPRO_LIBRARY")
        if env_library:
            config.library_path = env_library
        env_time_limit = os.environ.get("PREPRO_TIME_LIMIT")
        if env_time_limit:
            config.time_limit = float(env_time_limit)

        return config


class PreproOptions(BaseModel):
    """
    Engine tuning knobs. Every field is optional; only the fields that are
    set are forwarded to the engine, one call each.
    """
    model_config = ConfigDict(extra="forbid")

    bve_gate_extraction: Optional[bool] = None
    label_matching: Optional[bool] = None
    skip_technique: Optional[int] = None
    bve_sort_max_first: Optional[bool] = None
    bve_local_grow_limit: Optional[int] = None
    bve_global_grow_limit: Optional[int] = None
    max_bbtms_vars: Optional[int] = None
    harden_in_model_search: Optional[bool] = None
    model_search_iter_limit: Optional[int] = None

    def present(self) -> Iterator[Tuple[str, Any]]:
        """Yields (name, value) for every option that is set."""
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is not None:
                yield name, value

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.present())
