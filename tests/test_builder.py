import numpy as np
import pytest
from hypothesis import given, settings, HealthCheck

from conftest import weighted_instance_strategy
from prepro.builder import InitBuilder, compute_top_weight, soft_pairs, weight_matrix
from prepro.core.errors import ValidationError
from prepro.core.types import make_clause
from prepro.session import Session


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture], max_examples=50)
@given(instance=weighted_instance_strategy(max_objectives=3))
def test_top_weight_is_one_plus_total_weight(instance, config):
    hards, softs = instance
    expected = 1 + sum(w for obj in softs for w in obj.values())
    with Session(hards, softs, backend="reference", config=config) as session:
        assert session.top_weight() == expected
        assert session.n_objectives == len(softs)


def test_top_weight_without_objectives():
    assert compute_top_weight([]) == 1


def test_weight_matrix_is_rectangular():
    objectives = [
        soft_pairs({(1,): 3}),
        soft_pairs({(2,): 5, (3, -1): 1}),
    ]
    clauses, matrix = weight_matrix(objectives)
    assert clauses == [make_clause([1]), make_clause([2]), make_clause([-1, 3])]
    assert matrix.dtype == np.uint64
    assert matrix.shape == (3, 2)
    assert matrix.tolist() == [[3, 0], [0, 5], [0, 1]]


def test_soft_pairs_accepts_pair_sequences():
    pairs = soft_pairs([([2, 1], 4), ([-3], 0)])
    assert pairs == [(make_clause([1, 2]), 4), (make_clause([-3]), 0)]


@pytest.mark.parametrize("weight", [-1, 1.5, True, "3"])
def test_invalid_weights_are_rejected(weight):
    with pytest.raises(ValidationError):
        soft_pairs({(1,): weight})


def test_top_weight_must_fit_into_64_bits():
    with pytest.raises(ValidationError):
        compute_top_weight([soft_pairs({(1,): 2 ** 64 - 1})])
    assert compute_top_weight([soft_pairs({(1,): 2 ** 64 - 2})]) == 2 ** 64 - 1


def test_stream_order(recording_backend):
    builder = InitBuilder(
        recording_backend,
        hards=[[2, 1]],
        softs=[{(-1,): 2}, {(3,): 4}],
    )
    handle = builder.build()
    assert recording_backend.calls == [
        ("lit", 1), ("lit", 2), ("lit", 0),
        ("weight", 2), ("weight", 0), ("lit", -1), ("lit", 0),
        ("weight", 0), ("weight", 4), ("lit", 3), ("lit", 0),
        ("finalize",),
    ]
    assert recording_backend.top_weight(handle) == 7
    recording_backend.release(handle)


def test_hard_clauses_stream_without_weights(recording_backend):
    InitBuilder(recording_backend, hards=[[1], [-2, 3]], softs=[]).build()
    assert ("weight", 0) not in recording_backend.calls
    assert [c for c in recording_backend.calls if c[0] == "lit"] == [
        ("lit", 1), ("lit", 0), ("lit", -2), ("lit", 3), ("lit", 0)
    ]


def test_handle_is_released_when_build_fails(recording_backend):
    def fail(handle):
        raise RuntimeError("boom")

    recording_backend.init_finalize = fail
    with pytest.raises(RuntimeError):
        InitBuilder(recording_backend, hards=[[1]], softs=[]).build()
    assert recording_backend.calls[-1] == ("release",)
