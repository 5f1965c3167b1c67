"""Test configuration and fixtures"""
from pathlib import Path
import pytest

from py_sevt import CountTableSource, RecordsSource, full, indep, read_source

VARIABLES = ["Articles", "Gender", "Kids", "Married"]


@pytest.fixture
def test_data_dir():
    """Get path to test data directory"""
    return Path(__file__).parent / "test_data"


@pytest.fixture
def phd_counts(test_data_dir) -> CountTableSource:
    """PhD articles joint count table"""
    return read_source(test_data_dir / "phd_articles_counts.tsv", count_col="count")


@pytest.fixture
def phd_records(phd_counts) -> RecordsSource:
    """Same data as one row per observation"""
    frame = phd_counts.frame
    rows = frame.loc[frame.index.repeat(frame["count"].astype(int)), VARIABLES]
    return RecordsSource(rows.reset_index(drop=True))


@pytest.fixture
def phd_yaml(test_data_dir):
    """Tree definition and search settings"""
    return test_data_dir / "phd_articles.yml"


@pytest.fixture
def full_model(phd_counts):
    return full(phd_counts)


@pytest.fixture
def indep_model(phd_counts):
    return indep(phd_counts)


@pytest.fixture
def full_smoothed(phd_counts):
    return full(phd_counts, lam=1.0)
