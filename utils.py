"""
utils.py
Phone / money / WhatsApp validation, dates, bulk-import parsing, exports.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import pandas as pd

from models import Package, Subscriber

PHONE_LENGTH = 10
PHONE_PREFIX = "09"
PLACEHOLDER_PREFIX = "placeholder-"
WHATSAPP_MIN_DIGITS = 7
NS_PER_SECOND = 1_000_000_000

_NON_DIGITS = re.compile(r"\D")


# ---------- Phones ----------

def sanitize_phone(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def is_valid_phone(value: str) -> bool:
    digits = sanitize_phone(value)
    return len(digits) == PHONE_LENGTH and digits.startswith(PHONE_PREFIX)


def phone_validation_error(value: str) -> str | None:
    """Localized message for the first failing rule, or None when the phone is valid."""
    digits = sanitize_phone(value)
    if not digits:
        return "يرجى إدخال رقم الهاتف"
    if not digits.startswith(PHONE_PREFIX):
        return "يجب أن يبدأ الرقم بـ 09"
    if len(digits) < PHONE_LENGTH:
        return f"يجب إدخال {PHONE_LENGTH - len(digits)} أرقام إضافية"
    if len(digits) > PHONE_LENGTH:
        return "الرقم يجب أن يكون 10 أرقام فقط"
    return None


def format_phone_display(value: str) -> str:
    # 09XX XXX XXX
    digits = sanitize_phone(value)
    if len(digits) != PHONE_LENGTH:
        return value
    return f"{digits[:4]} {digits[4:7]} {digits[7:]}"


def is_placeholder_phone(value: str) -> bool:
    return value.startswith(PLACEHOLDER_PREFIX)


def placeholder_phone(subscriber_id: int) -> str:
    return f"{PLACEHOLDER_PREFIX}{subscriber_id}"


def is_valid_whatsapp_phone(value: str) -> bool:
    if not value or not value.strip():
        return False
    return len(sanitize_phone(value)) >= WHATSAPP_MIN_DIGITS


def whatsapp_url(value: str) -> str:
    if not is_valid_whatsapp_phone(value):
        raise ValueError("Invalid phone number")
    return f"https://wa.me/{sanitize_phone(value)}"


# ---------- Money ----------

def format_usd(cents: int) -> str:
    """Integer cents -> "$1,234.50" (always two decimals, leading minus for negatives)."""
    amount = Decimal(int(cents)).scaleb(-2)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def dollars_to_cents(value) -> int:
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a valid amount: {value!r}") from None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------- Dates ----------

def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def date_to_ns(d: date) -> int:
    midnight = datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    return int(midnight.timestamp()) * NS_PER_SECOND


def ns_to_date(ns: int) -> date:
    return datetime.fromtimestamp(int(ns) // NS_PER_SECOND, tz=timezone.utc).date()


def year_options(today: date | None = None) -> list[int]:
    year = (today or date.today()).year
    return list(range(year - 2, year + 3))


# ---------- Bulk import / exports ----------

def parse_bulk_names(text: str) -> list[str]:
    """
    Names from a pasted block: one per line or comma separated.
    Blank entries and exact duplicates are dropped, order kept.
    """
    names: list[str] = []
    for line in (text or "").splitlines():
        for part in line.split(","):
            name = part.strip()
            if name and name not in names:
                names.append(name)
    return names


def subscribers_frame(subscribers: list[Subscriber], packages: list[Package]) -> pd.DataFrame:
    by_id = {p.id: p for p in packages}
    rows = []
    for s in subscribers:
        pkg = by_id.get(s.package_id)
        rows.append(
            {
                "id": s.id,
                "full_name": s.full_name,
                "phone": s.phone,
                "package": pkg.name if pkg else "Unknown",
                "price": format_usd(pkg.price_usd if pkg else 0),
                "start_date": ns_to_date(s.subscription_start_date).isoformat(),
                "status": "Active" if s.active else "Inactive",
            }
        )
    if not rows:
        return pd.DataFrame(columns=["id", "full_name", "phone", "package", "price", "start_date", "status"])
    return pd.DataFrame(rows)


def subscribers_to_csv_bytes(subscribers: list[Subscriber], packages: list[Package]) -> bytes:
    return subscribers_frame(subscribers, packages).to_csv(index=False).encode("utf-8")
