"""
Reports Service - dashboard KPIs, revenue aggregation and CSV exports.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import func, select

from atom_portal.database.orm_models import Attendance, Subscription
from atom_portal.database.repositories.subscription_repository import TYPE_SESSIONS, TYPE_TIME
from atom_portal.errors import ServiceError
from atom_portal.services.base import BaseService
from atom_portal.services.subscription_service import PLANS, sessions_remaining
from atom_portal.utils import add_days, day_start, iso, local_date, parse_iso_date, rows_to_csv

logger = logging.getLogger(__name__)

REVENUE_DEFAULT_DAYS = 30
PLAN_TYPE_KEYS = {"1m": "monthly", "3m": "quarterly", "6m": "semiannual", "12m": "yearly"}

SUBSCRIPTION_HEADERS = [
    "id", "member_id", "member_email", "first_name", "last_name",
    "plan", "subscription_type", "status",
    "start_date", "end_date",
    "sessions_total", "sessions_used",
    "amount", "paid_at",
]
ACTIVE_NOW_HEADERS = SUBSCRIPTION_HEADERS[:12] + ["sessions_remaining", "amount", "paid_at"]
ATTENDANCE_HEADERS = [
    "id", "member_id", "member_email", "first_name", "last_name",
    "date", "scanned_at", "valid", "source", "subscription_id",
]


def _money(value: Any) -> float:
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01")))


class ReportService(BaseService):

    # ========== KPIs ==========

    def _active_today(self) -> List[Subscription]:
        today = self.today()
        return list(
            self.db.scalars(
                select(Subscription).where(
                    Subscription.status == "active",
                    Subscription.start_date <= today,
                    Subscription.end_date >= today,
                )
            ).all()
        )

    def kpis(self) -> Dict[str, Any]:
        today = self.today()
        active = self._active_today()
        time_subs = [s for s in active if s.subscription_type == TYPE_TIME]
        packs = [s for s in active if s.subscription_type == TYPE_SESSIONS and (sessions_remaining(s) or 0) > 0]

        by_type = {"monthly": 0, "quarterly": 0, "semiannual": 0, "yearly": 0, "dropin": len(packs)}
        for s in time_subs:
            key = PLAN_TYPE_KEYS.get(s.plan)
            if key:
                by_type[key] += 1

        expiring = self.db.scalar(
            select(func.count())
            .select_from(Subscription)
            .where(
                Subscription.subscription_type == TYPE_TIME,
                Subscription.status == "active",
                Subscription.end_date >= today,
                Subscription.end_date <= add_days(today, 7),
            )
        ) or 0
        checkins = self.db.scalar(
            select(func.count())
            .select_from(Attendance)
            .where(
                Attendance.valid.is_(True),
                Attendance.scanned_at >= day_start(today),
                Attendance.scanned_at < day_start(add_days(today, 1)),
            )
        ) or 0

        return {
            "ok": True,
            "mode": "kpi",
            "date": today.isoformat(),
            "kpis": {
                "active_members": len({s.member_id for s in time_subs} | {s.member_id for s in packs}),
                "dropin_with_credits": len({s.member_id for s in packs}),
                "expiring_in_7_days": int(expiring),
                "todays_checkins": int(checkins),
                "active_by_type": by_type,
            },
        }

    # ========== Revenue ==========

    def _range_or_default(self, date_from: Any, date_to: Any) -> Tuple[date, date]:
        d_from = parse_iso_date(date_from)
        d_to = parse_iso_date(date_to)
        if d_from is None or d_to is None or d_from > d_to:
            d_to = self.today()
            d_from = add_days(d_to, -(REVENUE_DEFAULT_DAYS - 1))
        return d_from, d_to

    def _paid_between(self, d_from: date, d_to: date) -> List[Subscription]:
        return list(
            self.db.scalars(
                select(Subscription)
                .where(
                    Subscription.paid_at >= day_start(d_from),
                    Subscription.paid_at < day_start(add_days(d_to, 1)),
                )
                .order_by(Subscription.paid_at, Subscription.id)
            ).all()
        )

    def revenue(self, date_from: Any = None, date_to: Any = None) -> Dict[str, Any]:
        d_from, d_to = self._range_or_default(date_from, date_to)
        by_plan = {p: Decimal("0") for p in PLANS}
        daily: Dict[date, Decimal] = {}
        day = d_from
        while day <= d_to:
            daily[day] = Decimal("0")
            day += timedelta(days=1)

        total = Decimal("0")
        for s in self._paid_between(d_from, d_to):
            amount = Decimal(str(s.amount or 0))
            total += amount
            if s.plan in by_plan:
                by_plan[s.plan] += amount
            paid_day = local_date(s.paid_at)
            if paid_day in daily:
                daily[paid_day] += amount

        return {
            "ok": True,
            "mode": "revenue",
            "range": {"from": d_from.isoformat(), "to": d_to.isoformat(), "days": len(daily)},
            "totals": {"sum": _money(total), "by_plan": {p: _money(v) for p, v in by_plan.items()}},
            "daily": [{"date": d.isoformat(), "sum": _money(v)} for d, v in sorted(daily.items())],
        }

    def stats(self, stat_type: Any, date_from: Any = None, date_to: Any = None) -> Dict[str, Any]:
        t = str(stat_type or "kpi").strip().lower()
        if t == "kpi":
            return self.kpis()
        if t == "revenue":
            return self.revenue(date_from, date_to)
        raise ServiceError("INVALID_TYPE", hint="Use ?type=kpi or ?type=revenue")

    # ========== CSV exports ==========

    def _required_range(self, date_from: Any, date_to: Any) -> Tuple[date, date]:
        d_from = parse_iso_date(date_from)
        d_to = parse_iso_date(date_to)
        if d_from is None or d_to is None or d_from > d_to:
            raise ServiceError("INVALID_RANGE", hint="Use ?from=YYYY-MM-DD&to=YYYY-MM-DD with from <= to")
        return d_from, d_to

    def _with_members(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        rows = list(rows)
        profiles = {p.user_id: p for p in self.profiles.get_many({r["member_id"] for r in rows})}
        for r in rows:
            p = profiles.get(r["member_id"])
            r["member_email"] = p.email if p else None
            r["first_name"] = p.first_name if p else None
            r["last_name"] = p.last_name if p else None
        return rows

    def _subscription_row(self, s: Subscription) -> Dict[str, Any]:
        return {
            "id": s.id,
            "member_id": s.member_id,
            "plan": s.plan,
            "subscription_type": s.subscription_type,
            "status": s.status,
            "start_date": iso(s.start_date),
            "end_date": iso(s.end_date),
            "sessions_total": s.sessions_total,
            "sessions_used": s.sessions_used,
            "sessions_remaining": sessions_remaining(s),
            "amount": s.amount,
            "paid_at": s.paid_at.isoformat() if s.paid_at else None,
        }

    def export_subscriptions(self, date_from: Any, date_to: Any) -> Tuple[str, str]:
        """Returns ``(filename, csv_text)``."""
        d_from, d_to = self._required_range(date_from, date_to)
        rows = self._with_members(self._subscription_row(s) for s in self._paid_between(d_from, d_to))
        return f"subscriptions_{d_from}_to_{d_to}.csv", rows_to_csv(SUBSCRIPTION_HEADERS, rows)

    def export_attendance(self, date_from: Any, date_to: Any) -> Tuple[str, str]:
        d_from, d_to = self._required_range(date_from, date_to)
        records = self.db.scalars(
            select(Attendance)
            .where(
                Attendance.scanned_at >= day_start(d_from),
                Attendance.scanned_at < day_start(add_days(d_to, 1)),
            )
            .order_by(Attendance.scanned_at, Attendance.id)
        ).all()
        rows = self._with_members(
            {
                "id": a.id,
                "member_id": a.member_id,
                "date": local_date(a.scanned_at).isoformat(),
                "scanned_at": a.scanned_at.isoformat(),
                "valid": a.valid,
                "source": a.source,
                "subscription_id": a.subscription_id,
            }
            for a in records
        )
        return f"attendance_{d_from}_to_{d_to}.csv", rows_to_csv(ATTENDANCE_HEADERS, rows)

    def export_active_now(self) -> Tuple[str, str]:
        today = self.today()
        subs = [
            s
            for s in self._active_today()
            if s.subscription_type == TYPE_TIME or (sessions_remaining(s) or 0) > 0
        ]
        subs.sort(key=lambda s: (s.subscription_type, s.end_date, s.id))
        rows = self._with_members(self._subscription_row(s) for s in subs)
        return f"subscriptions_active_now_{today}.csv", rows_to_csv(ACTIVE_NOW_HEADERS, rows)

