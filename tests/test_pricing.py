import pytest

from atom_portal.services.pricing import price_after_discount, prorate_lines, role_discount_percent

pytestmark = pytest.mark.unit


def test_role_discounts():
    assert role_discount_percent("coach") == 30
    assert role_discount_percent("ASSISTANT_COACH") == 20
    assert role_discount_percent("member") == 0
    assert role_discount_percent(None) == 0


def test_no_discount_keeps_line_subtotals():
    assert prorate_lines([1000, 2500], 0) == [1000, 2500]
    assert prorate_lines([], 30) == []


def test_last_line_absorbs_rounding():
    # 333 * 0.7 = 233.1 -> 233 per line; total 999 * 0.7 = 699.3 -> 699
    assert prorate_lines([333, 333, 333], 30) == [233, 233, 233]
    # 5 * 0.8 = 4 per line, total 15 * 0.8 = 12
    assert prorate_lines([5, 5, 5], 20) == [4, 4, 4]
    # 1 * 0.7 = 0.7 -> 1 per line, total 3 * 0.7 = 2.1 -> 2
    assert prorate_lines([1, 1, 1], 30) == [1, 1, 0]


@pytest.mark.parametrize("pct", [0, 20, 30])
@pytest.mark.parametrize(
    "subtotals",
    [[1], [1, 1, 1, 1, 1], [999, 1, 1], [12345, 6789, 101], [15, 15, 15, 15, 15, 15, 15]],
)
def test_lines_always_sum_to_discounted_total(subtotals, pct):
    finals = prorate_lines(subtotals, pct)
    assert sum(finals) == price_after_discount(sum(subtotals), pct)
    assert all(f >= 0 for f in finals)
    assert len(finals) == len(subtotals)
