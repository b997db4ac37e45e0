import gc

import pytest

from prepro.backends.reference import ReferenceBackend
from prepro.core.errors import (
    BackendUnavailableError, ConcurrentAccessError, EngineContractError, SessionClosedError,
    ValidationError
)
from prepro.core.types import Lit, make_clause
from prepro.session import Session


class BadSignatureBackend(ReferenceBackend):
    def signature(self) -> bytes:
        return b"\xff\xfe"


def test_hard_only_instance(make_session):
    session = make_session(hards=[[1, 2]])
    assert session.top_weight() == 1
    assert session.n_objectives == 0
    inst = session.prepro_instance()
    assert inst.hards == [make_clause([1, 2])]
    assert inst.softs == []
    assert session.max_orig_var() == 2


def test_complementary_soft_units(make_session):
    session = make_session(softs=[{(1,): 3, (-1,): 2}])
    assert session.top_weight() == 6
    inst = session.prepro_instance()
    assert inst.hards == []
    assert inst.softs == [{(Lit.pos(1),): 3, (Lit.neg(1),): 2}]
    assert inst.top_weight == 6
    assert inst.removed_weight == [0]


def test_extraction_is_idempotent(make_session):
    session = make_session(hards=[[1, -2], [2, 3]], softs=[{(1,): 4, (2, 3): 1}])
    session.preprocess("[us]")
    assert session.prepro_instance() == session.prepro_instance()
    assert session.prepro_labels() == session.prepro_labels()


def test_counts(make_session):
    session = make_session(hards=[[1], [1, 2]], softs=[{(2,): 1, (3, 4): 2}])
    assert session.n_prepro_clauses() == 4
    assert session.n_prepro_labels() == 1
    assert session.n_prepro_fixed_lits() == 0
    session.preprocess("u")
    assert session.n_prepro_fixed_lits() == 1
    assert session.prepro_fixed_lits() == [Lit.pos(1)]


def test_close_is_idempotent(make_session):
    session = make_session(hards=[[1]])
    session.close()
    session.close()
    assert session.closed
    with pytest.raises(SessionClosedError):
        session.top_weight()
    with pytest.raises(SessionClosedError):
        session.preprocess("u")
    with pytest.raises(SessionClosedError):
        session.add_var()


def test_with_block_releases(config):
    with Session([[1, 2]], [{(3,): 1}], backend="reference", config=config) as session:
        assert not session.closed
        handle = session._handle
    assert session.closed
    assert handle.released


def test_handle_released_on_exception(config):
    with pytest.raises(RuntimeError):
        with Session([[1]], backend="reference", config=config) as session:
            raise RuntimeError("solver crashed")
    assert session.closed


def test_signature(make_session):
    session = make_session()
    assert session.signature().startswith("prepro-reference")
    assert Session.engine_signature(ReferenceBackend()) == session.signature()


def test_signature_must_be_utf8():
    with pytest.raises(EngineContractError):
        Session.engine_signature(BadSignatureBackend())


def test_second_mutator_is_refused(make_session):
    session = make_session(hards=[[1]], softs=[{(2,): 1}])
    session._lock.acquire()
    try:
        with pytest.raises(ConcurrentAccessError):
            session.add_var()
        with pytest.raises(ConcurrentAccessError):
            session.preprocess("u")
        with pytest.raises(ConcurrentAccessError):
            session.top_weight()
        with pytest.raises(ConcurrentAccessError):
            session.prepro_instance()
    finally:
        session._lock.release()
    assert session.add_var() == 3


def test_unknown_backend(config):
    with pytest.raises(BackendUnavailableError):
        Session([[1]], backend="no-such-engine", config=config)


def test_backend_instance_is_used_as_is(config):
    backend = ReferenceBackend()
    with Session([[1]], backend=backend, config=config) as session:
        assert session.backend is backend


def test_unclosed_session_warns(config):
    session = Session([[1]], backend="reference", config=config)
    with pytest.warns(ResourceWarning):
        del session
        gc.collect()


def test_invalid_input_is_rejected_before_opening(recording_backend, config):
    with pytest.raises(ValidationError):
        Session([[1, 0]], backend=recording_backend, config=config)
    with pytest.raises(ValidationError):
        Session([[1]], [{(1,): -2}], backend=recording_backend, config=config)
    assert recording_backend.calls == []


def test_offsets_must_match_objectives(config):
    with pytest.raises(ValidationError):
        Session([], [{(1,): 1}], backend="reference", config=config, offsets=[0, 0])


def test_negative_time_limit(make_session):
    session = make_session(hards=[[1]])
    with pytest.raises(ValidationError):
        session.preprocess("u", time_limit=-1)


def test_preprocess_defaults_come_from_config(config):
    config.techniques = "u"
    with Session([[1], [-1, 2]], backend="reference", config=config) as session:
        session.preprocess()
        assert session.prepro_fixed_lits() == [Lit.pos(1), Lit.pos(2)]
        assert session._handle.technique_log[0].technique == "u"


def test_reads_resume_after_a_mutation(make_session):
    session = make_session(hards=[[1]], softs=[{(2,): 1}])
    session.preprocess("u")
    assert session.top_weight() == 2
    assert session.prepro_fixed_lits() == [Lit.pos(1)]


def test_objective_without_soft_clauses(make_session):
    session = make_session(hards=[[1, 2]], softs=[{}])
    assert session.n_objectives == 1
    assert session._handle.n_obj == 1
    assert session.removed_weight() == [0]
    assert session.add_label(1, 3) == Lit.pos(1)
    assert session.top_weight() == 4
    assert session.prepro_instance().softs == [{(Lit.pos(1),): 3}]
