"""Tests for the points-to-level rule."""

import pytest

from t4g.ledger.service import LedgerResult, compute_level


@pytest.mark.parametrize(
    ("points", "level"),
    [(0, 1), (1, 1), (499, 1), (500, 2), (999, 2), (1000, 3), (4999, 10)],
)
def test_level_every_500_points(points, level):
    assert compute_level(points) == level


def test_custom_step():
    assert compute_level(250, step=100) == 3


def test_negative_balance_is_level_one():
    assert compute_level(-50) == 1


def test_leveled_up_flag():
    assert LedgerResult(balance=500, level=2, previous_level=1).leveled_up
    assert not LedgerResult(balance=400, level=2, previous_level=2).leveled_up
