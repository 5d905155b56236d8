import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest

import repgraph as rg
from repgraph.util import InvalidArgumentError


def _edges(g):
    return {tuple(sorted(e)) for e in g.get_edgelist()}


def test_build_graph_plain_sequences():
    g = rg.tl.build_graph(["CASSL", "CASSL", "CASSF", "XXXXX"], {(0, 1), (0, 2), (1, 2)})
    assert g.vcount() == 4
    assert g.ecount() == 3
    assert not g.is_directed()
    assert g.degree(3) == 0
    assert g.vs["label"] == ["CASSL", "CASSL", "CASSF", "XXXXX"]
    assert g.vs["vseg"] == ["nosegment"] * 4
    assert g.vs["repind"] == [1, 2, 3, 4]
    assert g.vs["prob"] == [-1.0] * 4
    assert g["people"] == ["Individual"]
    assert g.vs["people"] == ["1"] * 4
    assert g.vs["npeople"] == [1] * 4


def test_build_graph_removes_loops_and_duplicates():
    g = rg.tl.build_graph(["AA", "AB", "BB"], [(0, 1), (1, 0), (1, 1), (1, 2), (1, 2)])
    assert g.is_simple()
    assert _edges(g) == {(0, 1), (1, 2)}


def test_build_graph_table():
    df = pd.DataFrame(
        {
            "cdr3": ["CASSL", "CASSF", "CAR"],
            "v": ["TRBV1", None, "TRBV2"],
            "p": [1e-5, 2e-7, 0.5],
        }
    )
    g = rg.tl.build_graph(df, set(), label_col="cdr3", seg_col="v", prob_col="p")
    assert g.ecount() == 0
    assert g.vs["label"] == ["CASSL", "CASSF", "CAR"]
    assert g.vs["vseg"] == ["TRBV1", "nosegment", "TRBV2"]
    npt.assert_almost_equal(g.vs["prob"], [1e-5, 2e-7, 0.5])


@pytest.mark.parametrize("seq", ["None", "NaN", "nan", "N/A"])
def test_build_graph_na_like_strings_are_sequences(seq):
    g = rg.tl.build_graph(["CASSL", seq], set())
    assert g.vs["label"] == ["CASSL", seq]

    df = pd.DataFrame({"CDR3.amino.acid.sequence": ["CASSL", "CASSF"], "V.segments": [seq, ""]})
    g = rg.tl.build_graph(df, set())
    assert g.vs["vseg"] == [seq, "nosegment"]

    g = rg.tl.repertoire_graph(["None", "Nonf"], n_jobs=1)
    assert _edges(g) == {(0, 1)}


def test_build_graph_shared_repertoire(shared_rep, logged_warnings):
    g = rg.tl.build_graph(shared_rep, set())
    assert logged_warnings == []
    assert g["people"] == ["A", "B"]
    assert g.vs["people"] == ["10", "01", "10"]
    assert g.vs["npeople"] == [1, 1, 1]
    assert g.vs["vseg"] == ["TRBV1", "TRBV2", "nosegment"]


def test_build_graph_explicit_sample_cols(shared_rep):
    g = rg.tl.build_graph(shared_rep, set(), sample_cols=["B", "A"])
    assert g["people"] == ["B", "A"]
    assert g.vs["people"] == ["01", "10", "01"]


@pytest.mark.parametrize(
    "data,kwargs",
    [
        (pd.DataFrame({"cdr3": ["AAA"]}), {}),
        (pd.DataFrame({"CDR3.amino.acid.sequence": ["AAA", ""]}), {}),
        (pd.DataFrame({"CDR3.amino.acid.sequence": ["AAA", None]}), {}),
        (pd.DataFrame({"CDR3.amino.acid.sequence": ["AAA", np.nan]}), {}),
        (pd.DataFrame({"CDR3.amino.acid.sequence": ["AAA", "AAB"], "Probability": ["x", "y"]}), {}),
        (pd.DataFrame({"CDR3.amino.acid.sequence": ["AAA", "AAB"], "A": [1, 1]}), {"sample_cols": ["A"]}),
        ("AAA", {}),
    ],
)
def test_build_graph_invalid(data, kwargs):
    with pytest.raises(InvalidArgumentError):
        rg.tl.build_graph(data, set(), **kwargs)


@pytest.mark.parametrize("pairs", [[(0, 3)], [(-1, 0)]])
def test_build_graph_pairs_out_of_range(pairs):
    with pytest.raises(InvalidArgumentError):
        rg.tl.build_graph(["AAA", "AAB", "ABB"], pairs)


def test_repertoire_graph():
    g = rg.tl.repertoire_graph(["CASSL", "CASSL", "CASSF", "XXXXX"], method="hamm", max_errors=1, n_jobs=1)
    assert g.vcount() == 4
    assert _edges(g) == {(0, 1), (0, 2), (1, 2)}
    assert g.degree(3) == 0


@pytest.mark.parametrize(
    "method,max_errors,expected",
    [
        ("hamm", 1, {(0, 2)}),
        ("hamm", 2, {(0, 2), (1, 3)}),
        ("lev", 1, {(0, 2)}),
        ("hamm", 0, set()),
    ],
)
def test_repertoire_graph_shared_repertoire(shared_rep_4, method, max_errors, expected):
    g = rg.tl.repertoire_graph(shared_rep_4, method=method, max_errors=max_errors, n_jobs=1)
    assert _edges(g) == expected
    assert g["people"] == ["Subj.A", "Subj.B", "Subj.C", "Subj.D"]
    assert g.vs["people"] == ["1111", "0101", "1000", "0010"]
    assert g.vs["npeople"] == [4, 2, 1, 1]
    assert g.vs["repind"] == [1, 2, 3, 4]


def test_repertoire_graph_pipeline(repertoires):
    shared = rg.pp.shared_repertoire(repertoires)
    g = rg.tl.repertoire_graph(shared, method="lev", max_errors=1, n_jobs=1)
    assert g.vs["label"] == ["CASSL", "CAR", "CASSF"]
    assert _edges(g) == {(0, 2)}
    assert g["people"] == ["S1", "S2"]
    assert g.vs["people"] == ["11", "01", "10"]
    assert g.vs["npeople"] == [2, 1, 1]


def test_repertoire_graph_invalid():
    with pytest.raises(InvalidArgumentError):
        rg.tl.repertoire_graph(["AAA", "AAB"], method="foo")
    with pytest.raises(InvalidArgumentError):
        rg.tl.repertoire_graph(["AAA", "AAB"], max_errors=-1)
    with pytest.raises(InvalidArgumentError):
        rg.tl.repertoire_graph(["AAA", ""])


def test_set_people_vector_missing_values(shared_rep):
    shared_rep["A"] = [5, np.nan, 2]
    g = rg.tl.build_graph(shared_rep, set())
    assert g.vs["people"] == ["10", "01", "10"]


def test_set_people_vector_keeps_count_column(shared_rep, logged_warnings):
    """`npeople` comes from the count column, even if it contradicts the sample columns"""
    shared_rep["People"] = [2, 1, 1]
    g = rg.tl.build_graph(shared_rep, set())
    assert len(logged_warnings) == 1
    assert "People" in logged_warnings[0]
    assert g.vs["npeople"] == [2, 1, 1]
    assert g.vs["people"][0] == "10"
    assert g.vs["people"][0].count("1") != g.vs["npeople"][0]


def test_set_people_vector_replaces_sample_universe(shared_rep):
    g = rg.tl.build_graph(shared_rep, set())
    rg.tl.set_people_vector(g, shared_rep, sample_cols=["B"])
    assert g["people"] == ["B"]
    assert g.vs["people"] == ["0", "1", "0"]
    for code in g.vs["people"]:
        assert len(code) == len(g["people"])


def test_set_people_vector_on_plain_graph(shared_rep):
    g = rg.tl.build_graph(shared_rep["CDR3.amino.acid.sequence"].tolist(), set())
    assert g["people"] == ["Individual"]
    res = rg.tl.set_people_vector(g, shared_rep)
    assert res is g
    assert g["people"] == ["A", "B"]
    assert g.vs["people"] == ["10", "01", "10"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"count_col": "Individuals"},
        {"sample_cols": []},
        {"sample_cols": ["C"]},
    ],
)
def test_set_people_vector_invalid(shared_rep, kwargs):
    g = rg.tl.build_graph(shared_rep, set())
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_people_vector(g, shared_rep, **kwargs)
    # graph is unchanged
    assert g["people"] == ["A", "B"]
    assert g.vs["people"] == ["10", "01", "10"]


def test_set_people_vector_row_mismatch(shared_rep):
    g = rg.tl.build_graph(shared_rep, set())
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_people_vector(g, shared_rep.iloc[:2, :])


def test_set_people_vector_missing_count(shared_rep):
    shared_rep["People"] = [1, np.nan, 1]
    g = rg.tl.build_graph(shared_rep["CDR3.amino.acid.sequence"].tolist(), set())
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_people_vector(g, shared_rep)


def test_set_group_vector(shared_rep):
    g = rg.tl.build_graph(shared_rep, set())
    res = rg.tl.set_group_vector(shared_rep, g, "grp", {"G1": {1}, "G2": {2}})
    assert res is g
    assert g["grp"] == ["G1", "G2"]
    assert g.vs["grp"] == ["10", "01", "10"]
    # base attributes are untouched
    assert g["people"] == ["A", "B"]
    assert g.vs["repind"] == [1, 2, 3]


def test_set_group_vector_sorts_group_names(shared_rep):
    g = rg.tl.build_graph(shared_rep, set())
    rg.tl.set_group_vector(shared_rep, g, "grp", {"b": [1], "a": [2]})
    assert g["grp"] == ["a", "b"]
    assert g.vs["grp"] == ["01", "10", "01"]


def test_set_group_vector_multiple_samples(shared_rep_4):
    g = rg.tl.build_graph(shared_rep_4, set())
    rg.tl.set_group_vector(shared_rep_4, g, "twins", {"A": [1, 2], "B": [3, 4]})
    assert g["twins"] == ["A", "B"]
    assert g.vs["twins"] == ["11", "11", "10", "01"]


@pytest.mark.parametrize(
    "groups,expected",
    [
        ({"G1": [1, 2], "G2": [2]}, ["10", "01", "10"]),
        ({"G2": [2], "G1": [1, 2]}, ["10", "10", "10"]),
    ],
)
def test_set_group_vector_last_assignment_wins(shared_rep, groups, expected, logged_warnings):
    g = rg.tl.build_graph(shared_rep, set())
    rg.tl.set_group_vector(shared_rep, g, "grp", groups)
    assert len(logged_warnings) == 1
    assert "Sample 2" in logged_warnings[0]
    assert g["grp"] == ["G1", "G2"]
    assert g.vs["grp"] == expected


def test_set_group_vector_unassigned_samples(shared_rep):
    g = rg.tl.build_graph(shared_rep, set())
    rg.tl.set_group_vector(shared_rep, g, "grp", {"G1": [1]})
    assert g["grp"] == ["G1"]
    assert g.vs["grp"] == ["1", "0", "1"]


def test_set_group_vector_idempotent(shared_rep_4):
    g = rg.tl.build_graph(shared_rep_4, set())
    groups = {"young": [2, 4], "old": [1], "unknown": []}
    rg.tl.set_group_vector(shared_rep_4, g, "age", groups)
    first_names, first_codes = list(g["age"]), list(g.vs["age"])
    rg.tl.set_group_vector(shared_rep_4, g, "age", groups)
    assert g["age"] == first_names == ["old", "unknown", "young"]
    assert g.vs["age"] == first_codes == ["101", "001", "100", "000"]


def test_set_group_vector_replaces_attribute(shared_rep):
    g = rg.tl.build_graph(shared_rep, set())
    rg.tl.set_group_vector(shared_rep, g, "grp", {"G1": [1], "G2": [2]})
    rg.tl.set_group_vector(shared_rep, g, "grp", {"all": [1, 2]})
    assert g["grp"] == ["all"]
    assert g.vs["grp"] == ["1", "1", "1"]


@pytest.mark.parametrize(
    "attr_name,groups",
    [
        ("grp", {}),
        ("grp", {"G1": [0]}),
        ("grp", {"G1": [3]}),
        ("grp", {"G1": [-1]}),
        ("grp", {"G1": ["1"]}),
        ("grp", {"G1": [True]}),
        ("grp", {1: [1]}),
        ("", {"G1": [1]}),
        ("people", {"G1": [1]}),
        ("repind", {"G1": [1]}),
    ],
)
def test_set_group_vector_invalid(shared_rep, attr_name, groups):
    g = rg.tl.build_graph(shared_rep, set())
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_group_vector(shared_rep, g, attr_name, groups)
    assert "grp" not in g.attributes()
    assert "grp" not in g.vs.attributes()


def test_set_group_vector_row_mismatch(shared_rep):
    g = rg.tl.build_graph(["AAA"], set())
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_group_vector(shared_rep, g, "grp", {"G1": [1]})


@pytest.mark.parametrize("people", [[1.7, 1, 1], [1, np.inf, 1]])
def test_set_people_vector_non_integer_count(shared_rep, people):
    g = rg.tl.build_graph(shared_rep["CDR3.amino.acid.sequence"].tolist(), set())
    shared_rep["People"] = people
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_people_vector(g, shared_rep)
    assert g["people"] == ["Individual"]


def test_set_people_vector_float_count(shared_rep):
    shared_rep["People"] = [1.0, 1.0, 1.0]
    g = rg.tl.build_graph(shared_rep, set())
    assert g.vs["npeople"] == [1, 1, 1]
    assert all(isinstance(x, int) for x in g.vs["npeople"])


@pytest.mark.parametrize("samples", [1, "12", None])
def test_set_group_vector_samples_not_a_collection(shared_rep, samples):
    g = rg.tl.build_graph(shared_rep, set())
    with pytest.raises(InvalidArgumentError):
        rg.tl.set_group_vector(shared_rep, g, "grp", {"G1": samples})
    assert "grp" not in g.attributes()
