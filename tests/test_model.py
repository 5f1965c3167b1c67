"""Tests for staged tree construction and probability estimation"""
import numpy as np
import pandas as pd
import pytest

from py_sevt import (
    BadStageAssignment,
    CountTableSource,
    MissingData,
    StagedTree,
    Tree,
    UNOBSERVED,
    UnfittedModel,
    full,
    indep,
)


@pytest.fixture
def tree():
    return Tree({"A": ["a1", "a2", "a3"], "B": ["b1", "b2"], "C": ["c1", "c2"]})


def test_independence_structure(tree):
    model = StagedTree.from_tree(tree)
    for var in tree.variables:
        labels = {model.stage_of(var, p) for p in range(1, tree.n_positions(var) + 1)}
        assert len(labels) == 1


def test_saturated_structure(tree):
    model = StagedTree.from_tree(tree, full=True)
    assert model.n_stages("B") == 3
    assert model.n_stages("C") == 6
    labels = {model.stage_of("C", p) for p in range(1, 7)}
    assert len(labels) == 6


def test_stage_vector_length_checked(tree):
    with pytest.raises(BadStageAssignment):
        StagedTree(tree, {"B": ["1", "2"], "C": ["1"]})
    with pytest.raises(BadStageAssignment):
        StagedTree(tree, {"B": ["1"]})
    with pytest.raises(BadStageAssignment):
        StagedTree(tree, {"A": ["1"], "B": ["1"], "C": ["1"]})


def test_compact_vector_reused(tree):
    model = StagedTree(tree, {"B": ["1"], "C": ["x", "y"]})
    assert [model.stage_of("C", p) for p in range(1, 7)] == ["x", "y"] * 3
    assert model.stage_of("C", ["a2", "b2"]) == "y"


def test_unfitted(tree):
    model = StagedTree.from_tree(tree)
    with pytest.raises(UnfittedModel):
        model.loglik()
    with pytest.raises(UnfittedModel):
        model.expand_prob()
    with pytest.raises(MissingData):
        model.fit()


def test_probabilities_are_distributions(full_model, indep_model, full_smoothed):
    for model in (full_model, indep_model, full_smoothed):
        for var in model.variables:
            for p in model.stage_probs(var).values():
                assert np.all(p >= 0)
                assert p.sum() == pytest.approx(1.0, abs=1e-9)


def test_first_variable_single_stage(full_model):
    probs = full_model.stage_probs("Articles")
    assert list(probs) == ["1"]
    np.testing.assert_allclose(probs["1"], np.array([275, 408, 178]) / 861)


def test_loglik_recomputed(full_model, indep_model, full_smoothed):
    for model in (full_model, indep_model, full_smoothed):
        ll1 = model.loglik()
        model.clear_loglik()
        ll2 = model.loglik()
        assert ll1 == pytest.approx(ll2)


def test_saturated_loglik(full_model):
    expected = 0.0
    for table in full_model.ctables.values():
        table = np.atleast_2d(table)
        for row in table:
            total = row.sum()
            for n in row:
                if n > 0:
                    expected += n * np.log(n / total)
    assert full_model.loglik() == pytest.approx(expected)


def test_unobserved_stage(full_model):
    assert full_model.stage_of("Married", [">2", "female", "yes"]) == UNOBSERVED
    assert full_model.stage_of("Married", 10) == UNOBSERVED
    assert full_model.n_stages("Married") == 12
    np.testing.assert_allclose(full_model.stage_probs("Married")[UNOBSERVED], [0.5, 0.5])


def test_zero_count_fallback(phd_counts):
    model = full(phd_counts, join_unobserved=False)
    assert UNOBSERVED not in model.stage_labels("Married")
    assert model.n_stages("Married") == 12
    np.testing.assert_allclose(model.stage_probs("Married")["10"], [0.5, 0.5])
    assert model.loglik() == pytest.approx(full(phd_counts).loglik())


def test_smoothing(full_smoothed):
    # Gender given Articles = 0: female 138, male 137
    np.testing.assert_allclose(full_smoothed.stage_probs("Gender")["1"], [139 / 277, 138 / 277])
    # unobserved situation gets the smoothed uniform vector
    np.testing.assert_allclose(full_smoothed.stage_probs("Married")[UNOBSERVED], [0.5, 0.5])


def test_smoothing_does_not_weight_loglik(full_model, full_smoothed):
    counts = full_smoothed.stage_counts("Gender")["1"]
    p = full_smoothed.stage_probs("Gender")["1"]
    assert counts.sum() == 275
    assert full_smoothed.loglik() < full_model.loglik()
    assert np.sum(counts * np.log(p)) < 0


def test_df_and_criteria(full_model, indep_model):
    assert full_model.df() == 2 + 3 + 6 + 11
    assert indep_model.df() == 2 + 1 + 1 + 1
    ll = full_model.loglik()
    assert full_model.aic() == pytest.approx(-2 * ll + 2 * 22)
    assert full_model.bic() == pytest.approx(-2 * ll + np.log(861) * 22)
    assert full_model.n_obs() == 861


def test_merge_refits_one_variable(full_model):
    model = full_model.copy()
    before = model.loglik()
    model.merge_stages("Kids", "1", "2")
    assert "2" not in model.stage_labels("Kids")
    counts = model.stage_counts("Kids")["1"]
    np.testing.assert_allclose(model.stage_probs("Kids")["1"], counts / counts.sum())
    assert model.loglik() <= before
    ll = model.loglik()
    model.clear_loglik()
    assert model.loglik() == pytest.approx(ll)
    # the source model is untouched
    assert "2" in full_model.stage_labels("Kids")


def test_merge_unknown_stage(full_model):
    model = full_model.copy()
    with pytest.raises(BadStageAssignment):
        model.merge_stages("Kids", "1", "99")


def test_split_stage(indep_model):
    model = indep_model.copy()
    label = model.split_stage("Kids", [1, 2])
    assert label == "2"
    assert model.stage_of("Kids", 1) == "2"
    assert model.stage_of("Kids", 3) == "1"
    assert model.loglik() >= indep_model.loglik()


def test_expand_prob(full_model):
    tables = full_model.expand_prob()
    married = tables["Married"]
    assert married.shape == (12, 2)
    assert list(married.index.names) == ["Articles", "Gender", "Kids"]
    assert list(married.columns) == ["no", "yes"]
    np.testing.assert_allclose(married.loc[("1-2", "male", "yes")], [3 / 91, 88 / 91])
    assert tables["Articles"].shape == (1, 3)


def test_expand_ctables(full_model):
    married = full_model.expand_ctables()["Married"]
    assert married.loc[(">2", "female", "yes")].sum() == 0


def test_summary(full_model):
    summary = full_model.summary()
    assert isinstance(summary, pd.DataFrame)
    assert summary.loc["Married", "stages"] == 12
    assert summary.loc["Married", "df"] == 11
    assert summary["df"].sum() == full_model.df()


def test_levels_only_source():
    model = full({"X": ["a", "b"], "Y": ["c", "d"]})
    assert not model.has_ctables()
    assert model.n_stages("Y") == 2


def test_fit_attaches_data(phd_counts, phd_records):
    model = StagedTree.from_tree(phd_counts.tree(), full=True)
    model.fit(phd_records)
    assert model.is_fitted()
    assert model.loglik() == pytest.approx(full(phd_counts, join_unobserved=False).loglik())


def test_refit_with_new_lambda(full_model):
    model = full_model.copy()
    model.fit(lam=1.0)
    assert model.lam == 1.0
    assert model.loglik() < full_model.loglik()
    with pytest.raises(ValueError):
        model.fit(lam=-1)


def test_indep_loglik(indep_model, phd_counts):
    # independence: each variable's marginal distribution
    frame = phd_counts.frame
    expected = 0.0
    for var in ["Articles", "Gender", "Kids", "Married"]:
        counts = frame.groupby(var)["count"].sum().to_numpy(dtype=float)
        expected += np.sum(counts * np.log(counts / counts.sum()))
    assert indep_model.loglik() == pytest.approx(expected)


def test_stage_of_unknown_variable(full_model):
    with pytest.raises(BadStageAssignment):
        full_model.stage_of("Salary", 1)


def _without_top_articles(phd_counts):
    frame = phd_counts.frame.copy()
    frame.loc[frame["Articles"] == ">2", "count"] = 0
    return CountTableSource(frame, "count")


def test_refit_releases_unobserved_positions(phd_counts):
    model = full(_without_top_articles(phd_counts))
    assert model.stage_of("Gender", 3) == UNOBSERVED
    assert model.stage_of("Married", 12) == UNOBSERVED

    model.fit(phd_counts)
    assert model.stage_of("Gender", 3) != UNOBSERVED
    assert model.stage_of("Married", 12) != UNOBSERVED
    # only the empty context stays unobserved
    assert model.stage_of("Married", 10) == UNOBSERVED
    for var in model.variables[1:]:
        counts = model.stage_counts(var)
        if UNOBSERVED in counts:
            assert counts[UNOBSERVED].sum() == 0
    reference = full(phd_counts)
    assert model.df() == reference.df()
    assert model.loglik() == pytest.approx(reference.loglik())


def test_refit_joins_new_empty_positions(full_model, phd_counts):
    model = full_model.copy()
    model.fit(_without_top_articles(phd_counts))
    assert model.stage_of("Gender", 3) == UNOBSERVED
    for pos in range(9, 13):
        assert model.stage_of("Married", pos) == UNOBSERVED
    assert model.stage_counts("Married")[UNOBSERVED].sum() == 0
    assert model.df() < full_model.df()
    # the source model keeps its stages
    assert full_model.stage_of("Gender", 3) == "3"


def test_refit_without_unobserved_stage_keeps_stages(phd_counts):
    model = full(phd_counts, join_unobserved=False)
    stages = {v: list(s) for v, s in model.stages.items()}
    model.fit(_without_top_articles(phd_counts))
    assert model.stages == stages
