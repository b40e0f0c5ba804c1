"""
billing.py
Month status derivation and toggle rules for the billing grid.
"""

from __future__ import annotations

from dataclasses import dataclass

from models import BillingEntry, MonthStatus, Package, Subscriber

NOT_DUE = "Not Due"
PAID = "Paid"
UNPAID = "Unpaid"


def derive_status(entries: list[BillingEntry], year: int, month: int) -> MonthStatus:
    """Status recorded for (year, month); an absent year or month means not due, not paid."""
    for entry in entries:
        if entry.year != year:
            continue
        for m in entry.months:
            if m.month == month:
                return m
    return MonthStatus(month=month, due=False, paid=False)


def toggle_due(status: MonthStatus) -> MonthStatus:
    # Turning due off clears paid; paid never outlives due.
    due = not status.due
    return MonthStatus(month=status.month, due=due, paid=status.paid if due else False)


def toggle_paid(status: MonthStatus) -> MonthStatus:
    if not status.due:
        return status
    return MonthStatus(month=status.month, due=True, paid=not status.paid)


def status_label(status: MonthStatus) -> str:
    if not status.due:
        return NOT_DUE
    return PAID if status.paid else UNPAID


@dataclass(frozen=True)
class BillingRow:
    phone: str
    full_name: str
    package_name: str
    amount: int
    status: MonthStatus

    @property
    def paid_enabled(self) -> bool:
        return self.status.due

    @property
    def label(self) -> str:
        return status_label(self.status)


def build_row(
    subscriber: Subscriber,
    packages: list[Package],
    entries: list[BillingEntry],
    year: int,
    month: int,
) -> BillingRow:
    pkg = next((p for p in packages if p.id == subscriber.package_id), None)
    return BillingRow(
        phone=subscriber.phone,
        full_name=subscriber.full_name,
        package_name=pkg.name if pkg else "Unknown",
        amount=pkg.price_usd if pkg else 0,
        status=derive_status(entries, year, month),
    )
