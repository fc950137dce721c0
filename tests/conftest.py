# tests/conftest.py
"""Shared fixtures for all test modules."""

import os

os.environ.setdefault("CATEMBED_LOG_TO_FILE", "false")

import pytest
import pandas as pd
import numpy as np

from catembed.utils import EncodingConfig


# =============================================================================
# CONFIG FIXTURES
# =============================================================================

@pytest.fixture
def numeric_config():
    """Config for category/outcome frames with a numeric outcome."""
    return EncodingConfig(category_column="category", outcome_column="outcome")


@pytest.fixture
def weighted_config():
    """Config that reads per-row weights from the 'weight' column."""
    return EncodingConfig(category_column="category", outcome_column="outcome", weight_column="weight")


def woe_config(alpha: float, **kwargs) -> EncodingConfig:
    return EncodingConfig(category_column="category", outcome_column="outcome", laplace_alpha=alpha, **kwargs)


@pytest.fixture
def make_woe_config():
    """Factory for WOE configs with a given Laplace alpha."""
    return woe_config


# =============================================================================
# NUMERIC OUTCOME FIXTURES
# =============================================================================

@pytest.fixture
def three_row_df():
    """A=(10, 12), B=(100): global mean 40.67, B has zero within-variance."""
    return pd.DataFrame({
        "category": ["A", "A", "B"],
        "outcome": [10.0, 12.0, 100.0],
        "weight": [1.0, 1.0, 1.0],
    })


@pytest.fixture
def sample_numeric_df():
    """Five levels of twenty rows with seed=42 and distinct level means."""
    rng = np.random.default_rng(42)
    levels = np.repeat(list("abcde"), 20)
    offsets = {"a": -2.0, "b": -1.0, "c": 0.0, "d": 1.0, "e": 3.0}
    outcome = np.array([offsets[level] for level in levels]) + rng.normal(0, 1, len(levels))
    return pd.DataFrame({
        "category": levels,
        "outcome": outcome,
        "weight": rng.uniform(0.5, 2.0, len(levels)),
    })


@pytest.fixture
def equal_means_df():
    """Every level has mean 5 but non-zero spread."""
    return pd.DataFrame({
        "category": ["a", "a", "b", "b", "c", "c"],
        "outcome": [4.0, 6.0, 3.0, 7.0, 5.0, 5.0],
    })


# =============================================================================
# BINARY OUTCOME FIXTURES
# =============================================================================

@pytest.fixture
def balanced_binary_df():
    """Balanced 0/1 outcome with level-dependent event rates and no empty cells."""
    rows = []
    for level, events, nonevents in [("a", 8, 2), ("b", 6, 4), ("c", 5, 5), ("d", 3, 7), ("e", 3, 7)]:
        rows += [(level, 1)] * events + [(level, 0)] * nonevents
    return pd.DataFrame(rows, columns=["category", "outcome"])


@pytest.fixture
def separated_df():
    """Perfect separation: X has only nonevents, Y only events."""
    return pd.DataFrame({
        "category": ["X"] * 5 + ["Y"] * 5,
        "outcome": [0] * 5 + [1] * 5,
    })


@pytest.fixture
def partially_separated_df():
    """Level 'z' has no events; the others have both classes."""
    return pd.DataFrame({
        "category": ["x"] * 4 + ["y"] * 4 + ["z"] * 3,
        "outcome": [1, 1, 1, 0] + [1, 0, 0, 0] + [0, 0, 0],
    })


@pytest.fixture
def unbalanced_binary_df():
    """10% event rate: 'a' and 'b' sit at that rate, 'c' is high, 'd' has no events."""
    rows = []
    for level, events, nonevents in [("a", 1, 9), ("b", 2, 18), ("c", 2, 4), ("d", 0, 14)]:
        rows += [(level, 1)] * events + [(level, 0)] * nonevents
    return pd.DataFrame(rows, columns=["category", "outcome"])


@pytest.fixture
def labelled_binary_df():
    """String outcome labels 'no'/'yes'."""
    return pd.DataFrame({
        "category": ["p", "p", "p", "q", "q", "q"],
        "outcome": ["yes", "no", "yes", "no", "no", "yes"],
    })


# =============================================================================
# DATAFRAME / PIPELINE FIXTURES
# =============================================================================

@pytest.fixture
def sample_transactions_df():
    """Realistic transactions with two categorical columns, seed=42."""
    np.random.seed(42)
    n = 200
    return pd.DataFrame({
        "transaction_id": [f"TXN_{i:05d}" for i in range(n)],
        "merchant_category": np.random.choice(["Retail", "Food", "Travel", "Electronics"], n),
        "transaction_channel": np.random.choice(["Online", "POS", "ATM"], n),
        "amount": np.random.exponential(1000, n),
        "weight": np.random.uniform(0.5, 1.5, n),
        "is_fraud": np.random.choice([0, 1], n, p=[0.8, 0.2]),
    })


@pytest.fixture
def small_transactions_df():
    """Minimal transactions for edge case testing."""
    return pd.DataFrame({
        "transaction_id": ["TXN_001", "TXN_002", "TXN_003", "TXN_004", "TXN_005"],
        "merchant_category": ["Retail", "Food", "Retail", "Travel", "Food"],
        "transaction_channel": ["Online", "POS", "Online", "Online", "ATM"],
        "amount": [100.0, 500.0, 0.0, 10000.0, 50.0],
        "weight": [1.0, 1.0, 1.0, 1.0, 1.0],
        "is_fraud": [0, 0, 1, 0, 1],
    })


@pytest.fixture
def train_parquet(sample_transactions_df, tmp_path):
    """Training transactions saved as parquet."""
    path = tmp_path / "train.parquet"
    sample_transactions_df.to_parquet(path)
    return path


@pytest.fixture
def score_parquet(small_transactions_df, tmp_path):
    """Scoring transactions with an unseen category, saved as parquet."""
    df = small_transactions_df.copy()
    df.loc[0, "merchant_category"] = "Gaming"
    path = tmp_path / "score.parquet"
    df.to_parquet(path)
    return path
