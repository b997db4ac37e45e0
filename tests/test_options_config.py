import json
import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from prepro.backends.registry import BackendRegistry
from prepro.config import DEFAULT_TECHNIQUES, PreproOptions, SessionConfig
from prepro.core.errors import BackendUnavailableError, ValidationError
from prepro.core.logging import get_logger
from prepro.session import Session


def test_options_are_sparse():
    options = PreproOptions(bve_gate_extraction=True, skip_technique=3)
    assert options.as_dict() == {"bve_gate_extraction": True, "skip_technique": 3}
    assert PreproOptions().as_dict() == {}


def test_options_forbid_unknown_fields():
    with pytest.raises(PydanticValidationError):
        PreproOptions(gate_extraction=True)


def test_each_present_option_is_one_call(recording_backend, config):
    with Session([[1]], [{(2,): 1}], backend=recording_backend, config=config) as session:
        session.set_options({"label_matching": True, "max_bbtms_vars": 100, "skip_technique": None})
        options = [c for c in recording_backend.calls if c[0] == "option"]
        assert sorted(options) == [
            ("option", "label_matching", True),
            ("option", "max_bbtms_vars", 100),
        ]
        assert session._handle.options == {"label_matching": True, "max_bbtms_vars": 100}


def test_options_model_is_accepted(recording_backend, config):
    with Session([[1]], backend=recording_backend, config=config) as session:
        session.set_options(PreproOptions(harden_in_model_search=False))
    assert ("option", "harden_in_model_search", False) in recording_backend.calls


@pytest.mark.parametrize("options", [{"bogus": 1}, {"skip_technique": "often"}])
def test_invalid_options(options, make_session):
    session = make_session(hards=[[1]])
    with pytest.raises(ValidationError):
        session.set_options(options)


def test_engine_rejects_unknown_option_names(make_session):
    session = make_session(hards=[[1]])
    with pytest.raises(ValidationError):
        session.backend.set_option(session._handle, "bogus", 1)


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("PREPRO_BACKEND", "PREPRO_TECHNIQUES", "PREPRO_LIBRARY",
                "PREPRO_TIME_LIMIT", "PREPRO_CONFIG_PATH"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_config_defaults(clean_env):
    config = SessionConfig.from_env_or_file()
    assert config.backend == "reference"
    assert config.techniques == DEFAULT_TECHNIQUES == "[bu]#[buvsrgc]"
    assert config.log_level == 0
    assert config.time_limit == 1e9
    assert config.library_path is None


def test_config_file_and_env_precedence(clean_env, tmp_path):
    path = tmp_path / "prepro.json"
    path.write_text(json.dumps({"techniques": "[us]", "time_limit": 5, "log_level": 1}))
    clean_env.setenv("PREPRO_CONFIG_PATH", str(path))
    config = SessionConfig.from_env_or_file()
    assert config.techniques == "[us]"
    assert config.time_limit == 5.0
    assert config.log_level == 1

    clean_env.setenv("PREPRO_TECHNIQUES", "u")
    clean_env.setenv("PREPRO_TIME_LIMIT", "2.5")
    config = SessionConfig.from_env_or_file()
    assert config.techniques == "u"
    assert config.time_limit == 2.5


def test_unreadable_config_file_keeps_defaults(clean_env, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    clean_env.setenv("PREPRO_CONFIG_PATH", str(path))
    assert SessionConfig.from_env_or_file() == SessionConfig()


def test_registry_lists_backends(config):
    registry = BackendRegistry(config)
    assert registry.list_backends() == ["maxpre", "reference"]
    assert registry.get().name == "reference"


def test_missing_native_library(tmp_path):
    config = SessionConfig(library_path=str(tmp_path / "libmaxpre.so"))
    registry = BackendRegistry(config)
    assert not registry.available("maxpre")
    with pytest.raises(BackendUnavailableError):
        registry.get("maxpre")
    with pytest.raises(BackendUnavailableError):
        Session([[1]], backend="maxpre", config=config)


def test_logger_respects_level(monkeypatch):
    monkeypatch.setenv("PREPRO_LOG_LEVEL", "debug")
    logger = get_logger("prepro.tests.level")
    assert logger.getEffectiveLevel() == logging.DEBUG
    assert logger.handlers == []
    package = logging.getLogger("prepro")
    assert len(package.handlers) == 1
    get_logger("prepro.tests.level")
    assert len(package.handlers) == 1

    monkeypatch.setenv("PREPRO_LOG_LEVEL", "not-a-level")
    assert get_logger("prepro").level == logging.WARNING


def test_foreign_names_are_placed_under_the_package():
    assert get_logger("solver_glue").name == "prepro.solver_glue"
    assert get_logger("prepro").name == "prepro"
