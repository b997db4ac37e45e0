from prepro.core.types import Assignment


def test_print_instance(make_session, capsys):
    session = make_session(hards=[[1, 2]], softs=[{(3,): 1}])
    session.print_instance()
    out = capsys.readouterr().out.splitlines()
    assert out == ["p wcnf 3 2 2", "2 1 2 0", "1 3 0"]


def test_print_solution_reconstructs_first(make_session, capsys):
    session = make_session(hards=[[1, 2]], softs=[{(3,): 1}])
    session.preprocess("b")
    session.print_solution(Assignment([3]), 0)
    out = capsys.readouterr().out.splitlines()
    assert out == ["o 0", "s OPTIMUM FOUND", "v 1 -2 3"]


def test_print_map_lists_the_trace(make_session, capsys):
    session = make_session(hards=[[1], [2, 3]], softs=[{(4,): 1}])
    session.preprocess("ub")
    session.print_map()
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "c original variables 4"
    assert "c fix 1" in out
    assert "c bce 2 : 2 3 0" in out


def test_logs_and_stats(make_session, capsys):
    session = make_session(hards=[[1], [-1, 2]], softs=[{(-2,): 3}])
    session.preprocess("[u]")
    session.print_technique_log()
    session.print_info_log()
    session.print_stats()
    out = capsys.readouterr().out
    assert "c u changed=1" in out
    assert "c finalized: 3 clauses, 2 variables, 1 objectives, top weight 4" in out
    assert "c removed weight 3" in out
    assert "c technique u runs 2" in out
