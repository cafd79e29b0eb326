"""Role discounts and their allocation across order lines."""

from decimal import Decimal
from typing import List, Sequence

from atom_portal.security.session_claims import ROLE_ASSISTANT_COACH, ROLE_COACH, normalize_role
from atom_portal.utils import round_half_up

ROLE_DISCOUNTS = {ROLE_COACH: 30, ROLE_ASSISTANT_COACH: 20}


def role_discount_percent(role) -> int:
    return ROLE_DISCOUNTS.get(normalize_role(role), 0)


def price_after_discount(base_cents: int, pct: int) -> int:
    return max(0, round_half_up(Decimal(int(base_cents)) * (100 - int(pct)) / 100))


def prorate_lines(line_subtotals: Sequence[int], pct: int) -> List[int]:
    """Split a percentage discount over lines.

    Every line but the last is discounted and rounded on its own; the last
    line takes whatever is left so the lines always sum to
    ``price_after_discount(sum(line_subtotals), pct)``. Earlier lines are
    capped at the remaining target so the last line never goes negative.
    """
    subs = [int(s) for s in line_subtotals]
    if not subs:
        return []
    if not pct:
        return subs
    target = price_after_discount(sum(subs), pct)
    finals: List[int] = []
    acc = 0
    for sub in subs[:-1]:
        final = min(price_after_discount(sub, pct), target - acc)
        finals.append(final)
        acc += final
    finals.append(target - acc)
    return finals
