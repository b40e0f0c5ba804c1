"""
models.py
Wire DTOs exchanged with the billing backend (frozen dataclasses), roles, Ok/Err.

Field names are snake_case in Python; the backend speaks camelCase, so every DTO
knows how to read itself from (and write itself to) a wire dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

MONTHS = {
    1: "January",
    2: "February",
    3: "March",
    4: "April",
    5: "May",
    6: "June",
    7: "July",
    8: "August",
    9: "September",
    10: "October",
    11: "November",
    12: "December",
}


class UserRole(str, Enum):
    admin = "admin"
    user = "user"
    guest = "guest"


# ---------- Result union ----------

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str | None = None


Result = Union[Ok, Err]


def result_from_wire(data: dict, decode) -> Result:
    """Turn a `{result?, error?}` dict into Ok/Err. Error wins when both are present."""
    if data.get("error"):
        return Err(str(data["error"]))
    if data.get("result") is None:
        return Err(None)
    return Ok(decode(data["result"]))


# ---------- Profiles ----------

@dataclass(frozen=True)
class UserProfile:
    name: str
    phone: str

    @classmethod
    def from_wire(cls, data: dict) -> "UserProfile":
        return cls(name=data["name"], phone=data["phone"])

    def to_wire(self) -> dict:
        return {"name": self.name, "phone": self.phone}


# ---------- Packages & subscribers ----------

@dataclass(frozen=True)
class Package:
    id: int
    name: str
    price_usd: int  # cents

    @classmethod
    def from_wire(cls, data: dict) -> "Package":
        return cls(id=int(data["id"]), name=data["name"], price_usd=int(data["priceUsd"]))

    def to_wire(self) -> dict:
        return {"id": self.id, "name": self.name, "priceUsd": self.price_usd}


@dataclass(frozen=True)
class Subscriber:
    id: int
    full_name: str
    phone: str
    package_id: int
    subscription_start_date: int  # ns since epoch
    active: bool

    @classmethod
    def from_wire(cls, data: dict) -> "Subscriber":
        return cls(
            id=int(data["id"]),
            full_name=data["fullName"],
            phone=data["phone"],
            package_id=int(data["packageId"]),
            subscription_start_date=int(data["subscriptionStartDate"]),
            active=bool(data["active"]),
        )

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "fullName": self.full_name,
            "phone": self.phone,
            "packageId": self.package_id,
            "subscriptionStartDate": self.subscription_start_date,
            "active": self.active,
        }


@dataclass(frozen=True)
class BulkImportInput:
    names: str
    package_id: int
    subscription_start_date: int

    def to_wire(self) -> dict:
        return {
            "names": self.names,
            "packageId": self.package_id,
            "subscriptionStartDate": self.subscription_start_date,
        }


@dataclass(frozen=True)
class BulkImportResult:
    name: str
    outcome: Result

    @classmethod
    def from_wire(cls, data: dict) -> "BulkImportResult":
        return cls(name=data["name"], outcome=result_from_wire(data, Subscriber.from_wire))

    def to_wire(self) -> dict:
        out: dict[str, Any] = {"name": self.name}
        if isinstance(self.outcome, Ok):
            out["result"] = self.outcome.value.to_wire()
        else:
            out["error"] = self.outcome.reason
        return out


@dataclass(frozen=True)
class DeleteAllSubscribersResult:
    subscribers_deleted: int

    @classmethod
    def from_wire(cls, data: dict) -> "DeleteAllSubscribersResult":
        return cls(subscribers_deleted=int(data["subscribersDeleted"]))

    def to_wire(self) -> dict:
        return {"subscribersDeleted": self.subscribers_deleted}


# ---------- Billing ----------

@dataclass(frozen=True)
class MonthStatus:
    month: int
    due: bool = False
    paid: bool = False

    @classmethod
    def from_wire(cls, data: dict) -> "MonthStatus":
        return cls(month=int(data["month"]), due=bool(data["due"]), paid=bool(data["paid"]))

    def to_wire(self) -> dict:
        return {"month": self.month, "due": self.due, "paid": self.paid}


@dataclass(frozen=True)
class BillingEntry:
    year: int
    months: tuple[MonthStatus, ...] = field(default_factory=tuple)

    @classmethod
    def from_wire(cls, data: dict) -> "BillingEntry":
        return cls(
            year=int(data["year"]),
            months=tuple(MonthStatus.from_wire(m) for m in data.get("months", [])),
        )

    def to_wire(self) -> dict:
        return {"year": self.year, "months": [m.to_wire() for m in self.months]}


@dataclass(frozen=True)
class SubscriberMonthlyBill:
    full_name: str
    amount_due: int

    @classmethod
    def from_wire(cls, data: dict) -> "SubscriberMonthlyBill":
        return cls(full_name=data["fullName"], amount_due=int(data["amountDue"]))

    def to_wire(self) -> dict:
        return {"fullName": self.full_name, "amountDue": self.amount_due}


@dataclass(frozen=True)
class MonthlyBillsResult:
    year: int
    month: int
    subscribers: tuple[SubscriberMonthlyBill, ...]

    @classmethod
    def from_wire(cls, data: dict) -> "MonthlyBillsResult":
        return cls(
            year=int(data["year"]),
            month=int(data["month"]),
            subscribers=tuple(SubscriberMonthlyBill.from_wire(s) for s in data["subscribers"]),
        )

    def to_wire(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "subscribers": [s.to_wire() for s in self.subscribers],
        }


@dataclass(frozen=True)
class CallerPaymentDue:
    year: int
    month: int
    amount_cents: int
    due: bool
    paid: bool

    @classmethod
    def from_wire(cls, data: dict) -> "CallerPaymentDue":
        return cls(
            year=int(data["year"]),
            month=int(data["month"]),
            amount_cents=int(data["amountCents"]),
            due=bool(data.get("due", False)),
            paid=bool(data.get("paid", False)),
        )

    def to_wire(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "amountCents": self.amount_cents,
            "due": self.due,
            "paid": self.paid,
        }


@dataclass(frozen=True)
class SubscriberBillingSummary:
    phone: str
    full_name: str
    package_name: str
    monthly_price_usd: int
    months_due: int
    months_paid: int
    total_outstanding: int

    @classmethod
    def from_wire(cls, data: dict) -> "SubscriberBillingSummary":
        return cls(
            phone=data["phone"],
            full_name=data["fullName"],
            package_name=data["packageName"],
            monthly_price_usd=int(data["monthlyPriceUsd"]),
            months_due=int(data["monthsDue"]),
            months_paid=int(data["monthsPaid"]),
            total_outstanding=int(data["totalOutstanding"]),
        )

    def to_wire(self) -> dict:
        return {
            "phone": self.phone,
            "fullName": self.full_name,
            "packageName": self.package_name,
            "monthlyPriceUsd": self.monthly_price_usd,
            "monthsDue": self.months_due,
            "monthsPaid": self.months_paid,
            "totalOutstanding": self.total_outstanding,
        }


# ---------- Subscriber self-service ----------

@dataclass(frozen=True)
class ClaimSubscriberInput:
    name: str
    phone: str
    subscriber_id: int | None = None

    def to_wire(self) -> dict:
        out: dict[str, Any] = {"name": self.name, "phone": self.phone}
        if self.subscriber_id is not None:
            out["subscriberId"] = self.subscriber_id
        return out


@dataclass(frozen=True)
class ClaimResult:
    outcome: Result
    claimed_phone: str | None = None

    @classmethod
    def from_wire(cls, data: dict) -> "ClaimResult":
        return cls(
            outcome=result_from_wire(data, Subscriber.from_wire),
            claimed_phone=data.get("claimedPhone"),
        )

    def to_wire(self) -> dict:
        out: dict[str, Any] = {}
        if isinstance(self.outcome, Ok):
            out["result"] = self.outcome.value.to_wire()
        else:
            out["error"] = self.outcome.reason
        if self.claimed_phone is not None:
            out["claimedPhone"] = self.claimed_phone
        return out
