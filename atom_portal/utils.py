import calendar
import csv
import io
import logging
import os
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
QR_PREFIX = "atom:"


# --- Dates ---


def _app_timezone():
    tz_name = os.getenv("APP_TIMEZONE") or os.getenv("TZ") or "UTC"
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown APP_TIMEZONE {tz_name!r}, falling back to UTC")
        return timezone.utc


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_local() -> date:
    """Current calendar date in the gym's timezone."""
    return now_utc().astimezone(_app_timezone()).date()


def day_start(d: date) -> datetime:
    """Midnight of ``d`` in the gym's timezone, as an aware datetime."""
    return datetime.combine(d, time.min, tzinfo=_app_timezone())


def local_date(dt: datetime) -> date:
    """Calendar date of ``dt`` in the gym's timezone. Naive values are UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(_app_timezone()).date()


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=int(days))


def add_months(d: date, months: int) -> date:
    """Same day ``months`` calendar months later, clamped to the month's last day.

    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years).
    """
    idx = d.month - 1 + int(months)
    year = d.year + idx // 12
    month = idx % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse a strict YYYY-MM-DD value. Returns None for anything else."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value or "").strip()
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", s):
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


# --- Numbers ---


def round_half_up(value: Any) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_int(value: Any, default: int, lo: int, hi: Optional[int] = None) -> int:
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        n = default
    n = max(lo, n)
    if hi is not None:
        n = min(hi, n)
    return n


def to_price_string(cents: Any) -> str:
    """1234 -> '12.34'."""
    try:
        n = int(cents or 0)
    except (TypeError, ValueError):
        n = 0
    return f"{Decimal(n) / 100:.2f}"


def parse_price_to_cents(value: Any) -> int:
    """'12.34' or '12,34' -> 1234. Invalid input yields 0."""
    s = str(value if value is not None else "").strip().replace(",", ".")
    if not s:
        return 0
    try:
        amount = Decimal(s)
    except InvalidOperation:
        return 0
    if not amount.is_finite():
        return 0
    return round_half_up(amount * 100)


def format_currency(cents: Any, currency: str = "EGP") -> str:
    try:
        n = int(cents or 0)
    except (TypeError, ValueError):
        n = 0
    return f"{(currency or 'EGP').upper()} {Decimal(n) / 100:,.2f}"


# --- QR / identifiers ---


def is_uuid(value: Any) -> bool:
    return bool(UUID_RE.match(str(value or "").strip()))


def normalize_qr(value: Any) -> str:
    """Trim and lowercase the ``ATOM:`` prefix."""
    s = str(value or "").strip()
    if s[:5].lower() == QR_PREFIX:
        return QR_PREFIX + s[5:]
    return s


def extract_member_id(raw: Any) -> Optional[str]:
    """Return the uuid carried by ``atom:<uuid>`` or a bare uuid."""
    s = normalize_qr(raw)
    if s.startswith(QR_PREFIX):
        s = s[len(QR_PREFIX):].strip()
    if is_uuid(s):
        return s.lower()
    return None


def member_qr_code(user_id: str) -> str:
    return f"{QR_PREFIX}{user_id}"


def is_valid_email(value: Any) -> bool:
    return bool(EMAIL_RE.match(str(value or "").strip()))


# --- App ---


def get_app_url() -> str:
    explicit = (os.getenv("NEXT_PUBLIC_APP_URL") or "").strip()
    if explicit:
        return explicit.rstrip("/")
    vercel = (os.getenv("VERCEL_URL") or "").strip()
    if vercel:
        return f"https://{vercel}".rstrip("/")
    return "http://localhost:3000"


def full_name(first_name: Optional[str], last_name: Optional[str], email: Optional[str] = None) -> str:
    name = " ".join(p.strip() for p in (first_name or "", last_name or "") if p and p.strip())
    return name or (email or "")


# --- CSV ---


def rows_to_csv(headers: Sequence[str], rows: Iterable[Dict[str, Any]]) -> str:
    """Serialize rows with every cell quoted and CRLF line endings."""
    buf = io.StringIO()
    writer = csv.DictWriter(
        buf,
        fieldnames=list(headers),
        quoting=csv.QUOTE_ALL,
        lineterminator="\r\n",
        extrasaction="ignore",
    )
    writer.writeheader()
    for row in rows:
        writer.writerow({h: _csv_value(row.get(h)) for h in headers})
    return buf.getvalue()


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]
