"""Tests for count aggregation along the tree"""
import numpy as np
import pandas as pd
import pytest

from py_sevt import (
    CountTableSource,
    InvalidLevels,
    LevelsSource,
    RecordsSource,
    Tree,
    as_source,
    joint_counts,
    make_ctables,
)


def test_first_variable_is_vector(phd_counts):
    tree = phd_counts.tree()
    ctables = make_ctables(tree, phd_counts.joint(tree))
    assert ctables["Articles"].shape == (3,)
    np.testing.assert_array_equal(ctables["Articles"], [275, 408, 178])


def test_tables_by_prefix(phd_counts):
    tree = phd_counts.tree()
    ctables = make_ctables(tree, phd_counts.joint(tree))
    assert ctables["Gender"].shape == (3, 2)
    assert ctables["Kids"].shape == (6, 2)
    assert ctables["Married"].shape == (12, 2)
    # female, male given Articles = 0
    np.testing.assert_array_equal(ctables["Gender"][0], [138, 137])
    # every table holds all the observations
    for table in ctables.values():
        assert table.sum() == 861


def test_rows_follow_tree_index(phd_counts):
    tree = phd_counts.tree()
    ctables = make_ctables(tree, phd_counts.joint(tree))
    row = tree.index([">2", "female", "yes"]) - 1
    np.testing.assert_array_equal(ctables["Married"][row], [0, 0])
    row = tree.index(["1-2", "male", "yes"]) - 1
    np.testing.assert_array_equal(ctables["Married"][row], [3, 88])


def test_records_match_counts(phd_counts, phd_records):
    tree = phd_counts.tree()
    assert phd_records.tree() == tree
    np.testing.assert_array_equal(phd_records.joint(tree), phd_counts.joint(tree))


def test_values_outside_levels():
    frame = pd.DataFrame({"A": ["x", "y"], "B": ["u", "w"]})
    tree = Tree({"A": ["x", "y"], "B": ["u", "v"]})
    with pytest.raises(InvalidLevels):
        joint_counts(tree, frame)


def test_missing_column():
    frame = pd.DataFrame({"A": ["x", "y"]})
    with pytest.raises(InvalidLevels):
        joint_counts(Tree({"A": ["x", "y"], "B": ["u"]}), frame)


def test_joint_shape_checked():
    tree = Tree({"A": ["x", "y"], "B": ["u", "v"]})
    with pytest.raises(InvalidLevels):
        make_ctables(tree, np.zeros((2, 3)))


def test_categorical_levels_kept():
    frame = pd.DataFrame({
        "A": pd.Categorical(["lo", "hi"], categories=["lo", "mid", "hi"]),
        "B": ["1", "2"],
    })
    source = as_source(frame)
    assert isinstance(source, RecordsSource)
    tree = source.tree()
    assert tree.levels["A"] == ["lo", "mid", "hi"]
    np.testing.assert_array_equal(source.joint(tree), [[1, 0], [0, 0], [0, 1]])


def test_as_source_variants():
    series = pd.Series(
        [1, 2, 3, 4],
        index=pd.MultiIndex.from_product([["a", "b"], ["c", "d"]], names=["X", "Y"]),
    )
    source = as_source(series)
    assert isinstance(source, CountTableSource)
    np.testing.assert_array_equal(source.joint(source.tree()), [[1, 2], [3, 4]])

    levels = as_source({"X": ["a", "b"]})
    assert isinstance(levels, LevelsSource)
    assert levels.joint(levels.tree()) is None

    with pytest.raises(TypeError):
        as_source([1, 2, 3])


def test_from_array():
    source = CountTableSource.from_array(np.arange(6).reshape(2, 3), {"X": ["a", "b"], "Y": [1, 2, 3]})
    tree = source.tree()
    assert tree.levels["Y"] == ["1", "2", "3"]
    np.testing.assert_array_equal(source.joint(tree), np.arange(6).reshape(2, 3))


def test_order(phd_counts):
    tree = phd_counts.tree(order=["Married", "Articles"])
    assert tree.variables == ["Married", "Articles"]
    ctables = make_ctables(tree, phd_counts.joint(tree))
    assert ctables["Articles"].shape == (2, 3)


def test_numeric_levels_in_numeric_order():
    frame = pd.DataFrame({"X": [1, 2, 10, 2], "Y": ["a", "b", "a", "a"]})
    tree = as_source(frame).tree()
    assert tree.levels["X"] == ["1", "2", "10"]
    np.testing.assert_array_equal(as_source(frame).joint(tree), [[1, 0], [1, 1], [1, 0]])
