import pytest
from hypothesis import strategies as st

from prepro.backends.reference import ReferenceBackend
from prepro.config import SessionConfig
from prepro.session import Session


class RecordingBackend(ReferenceBackend):
    """Reference engine that records the calls crossing the engine boundary."""

    def __init__(self):
        self.calls = []

    @property
    def name(self) -> str:
        return "recording"

    def init_add_weight(self, handle, weight):
        self.calls.append(("weight", weight))
        super().init_add_weight(handle, weight)

    def init_add_lit(self, handle, lit):
        self.calls.append(("lit", lit))
        super().init_add_lit(handle, lit)

    def init_finalize(self, handle):
        self.calls.append(("finalize",))
        super().init_finalize(handle)

    def release(self, handle):
        self.calls.append(("release",))
        super().release(handle)

    def set_option(self, handle, option, value):
        self.calls.append(("option", option, value))
        super().set_option(handle, option, value)


@pytest.fixture
def config():
    return SessionConfig()


@pytest.fixture
def recording_backend():
    return RecordingBackend()


@pytest.fixture
def make_session(config):
    sessions = []

    def _make(hards=(), softs=(), inprocessing=False, **kwargs):
        kwargs.setdefault("backend", "reference")
        kwargs.setdefault("config", config)
        session = Session(hards, softs, inprocessing, **kwargs)
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


# Hypothesis strategies for random weighted instances
@st.composite
def clause_strategy(draw, num_vars):
    size = draw(st.integers(min_value=1, max_value=min(4, num_vars)))
    variables = draw(st.lists(st.integers(min_value=1, max_value=num_vars),
                              min_size=size, max_size=size, unique=True))
    return [v if draw(st.booleans()) else -v for v in variables]


@st.composite
def weighted_instance_strategy(draw, max_vars=8, max_objectives=1):
    num_vars = draw(st.integers(min_value=1, max_value=max_vars))
    hards = draw(st.lists(clause_strategy(num_vars), min_size=0, max_size=12))
    n_obj = draw(st.integers(min_value=1, max_value=max_objectives))
    softs = []
    for _ in range(n_obj):
        pairs = draw(st.lists(
            st.tuples(clause_strategy(num_vars), st.integers(min_value=1, max_value=20)),
            min_size=1, max_size=6,
        ))
        objective = {}
        for clause, weight in pairs:
            objective[tuple(clause)] = weight
        softs.append(objective)
    return hards, softs
