"""
backend.py
The billing backend contract (interface version 4), error types, and the HTTP client.

All durable state lives behind this contract. The app talks to an "actor": an
object bound to the caller's identity that exposes every RPC as a method.
`create_actor` picks the HTTP client or the local SQLite stand-in from settings.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests

from config import Settings
from models import (
    BillingEntry,
    BulkImportInput,
    BulkImportResult,
    CallerPaymentDue,
    ClaimResult,
    ClaimSubscriberInput,
    DeleteAllSubscribersResult,
    Err,
    MonthlyBillsResult,
    Ok,
    Package,
    Subscriber,
    SubscriberBillingSummary,
    UserProfile,
    UserRole,
)

logger = logging.getLogger(__name__)

INTERFACE_VERSION = 4


class BackendError(Exception):
    """A backend call failed (transport, remote validation, or a returned error)."""

    def __init__(self, message: str = "Backend call failed"):
        super().__init__(message)
        self.message = message


class ActorUnavailableError(BackendError):
    def __init__(self, message: str = "Actor not available"):
        super().__init__(message)


@dataclass(frozen=True)
class Identity:
    principal: str
    token: str | None = None


def unwrap(result):
    """Value of an Ok; an Err becomes a BackendError (generic message when no reason is given)."""
    if isinstance(result, Ok):
        return result.value
    if isinstance(result, Err):
        raise BackendError(result.reason or "Operation failed")
    raise TypeError(f"Expected Ok or Err, got {type(result).__name__}")


class BillingBackend(ABC):
    """Interface version 4: subscribers are keyed by phone; every method below coexists."""

    identity: Identity

    # Profile / role
    @abstractmethod
    def get_caller_user_profile(self) -> UserProfile | None: ...

    @abstractmethod
    def save_caller_user_profile(self, profile: UserProfile) -> None: ...

    @abstractmethod
    def get_caller_user_role(self) -> UserRole: ...

    @abstractmethod
    def is_caller_admin(self) -> bool: ...

    @abstractmethod
    def assign_caller_user_role(self, user: str, role: UserRole) -> None: ...

    @abstractmethod
    def get_user_profile(self, user: str) -> UserProfile | None: ...

    # Packages
    @abstractmethod
    def get_all_packages(self) -> list[Package]: ...

    @abstractmethod
    def get_package(self, package_id: int) -> Package: ...

    @abstractmethod
    def create_package(self, name: str, price_usd: int) -> Package: ...

    @abstractmethod
    def update_package(self, package_id: int, name: str, price_usd: int) -> Package: ...

    # Subscribers
    @abstractmethod
    def get_all_active_subscribers(self) -> list[Subscriber]: ...

    @abstractmethod
    def get_subscriber(self, phone: str) -> Subscriber: ...

    @abstractmethod
    def create_subscriber(
        self, full_name: str, phone: str, package_id: int, subscription_start_date: int
    ) -> Subscriber: ...

    @abstractmethod
    def update_subscriber(self, phone: str, full_name: str, package_id: int, active: bool) -> Subscriber: ...

    @abstractmethod
    def bulk_create_subscribers(self, data: BulkImportInput) -> list[BulkImportResult]: ...

    @abstractmethod
    def delete_all_subscribers(self) -> DeleteAllSubscribersResult: ...

    @abstractmethod
    def is_phone_number_taken(self, phone: str) -> bool: ...

    # Billing
    @abstractmethod
    def get_billing_state(self, phone: str) -> list[BillingEntry]: ...

    @abstractmethod
    def set_month_billing_status(self, phone: str, year: int, month: int, due: bool, paid: bool) -> None: ...

    @abstractmethod
    def get_total_due_for_month(self, year: int, month: int) -> int: ...

    @abstractmethod
    def get_total_due_for_year(self, year: int) -> int: ...

    @abstractmethod
    def get_subscriber_billing_summary(self, phone: str) -> SubscriberBillingSummary: ...

    @abstractmethod
    def fetch_monthly_bills(self, year: int, month: int) -> MonthlyBillsResult: ...

    @abstractmethod
    def get_caller_monthly_due(self, year: int, month: int) -> CallerPaymentDue: ...

    # Subscriber self-service
    @abstractmethod
    def login_claim_subscriber(self, data: ClaimSubscriberInput) -> ClaimResult: ...


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            if body.get(key):
                return str(body[key])
    if resp.status_code in (401, 403):
        return "Not authorized for this operation"
    return f"Backend error {resp.status_code}"


class HttpBackend(BillingBackend):
    """JSON-over-HTTP client: POST {base_url}/rpc/{method} with {"args": [...]}."""

    def __init__(
        self,
        identity: Identity,
        base_url: str,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ):
        self.identity = identity
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"X-Interface-Version": str(INTERFACE_VERSION)}
        if self.identity.token:
            headers["Authorization"] = f"Bearer {self.identity.token}"
        return headers

    def _call(self, method: str, *args):
        url = f"{self.base_url}/rpc/{method}"
        started = time.monotonic()
        try:
            resp = self.session.post(url, json={"args": list(args)}, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise BackendError("The server did not respond in time") from None
        except requests.exceptions.ConnectionError:
            raise BackendError("Could not reach the server") from None
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Request to {method} failed: {e.__class__.__name__}") from None
        logger.debug("rpc %s -> %s in %.0f ms", method, resp.status_code, (time.monotonic() - started) * 1000)

        if not resp.ok:
            raise BackendError(_error_message(resp))
        try:
            body = resp.json()
        except ValueError:
            raise BackendError(f"Malformed response from {method}") from None
        return body.get("value") if isinstance(body, dict) else None

    # Profile / role

    def get_caller_user_profile(self) -> UserProfile | None:
        data = self._call("getCallerUserProfile")
        return UserProfile.from_wire(data) if data else None

    def save_caller_user_profile(self, profile: UserProfile) -> None:
        self._call("saveCallerUserProfile", profile.to_wire())

    def get_caller_user_role(self) -> UserRole:
        return UserRole(self._call("getCallerUserRole"))

    def is_caller_admin(self) -> bool:
        return bool(self._call("isCallerAdmin"))

    def assign_caller_user_role(self, user: str, role: UserRole) -> None:
        self._call("assignCallerUserRole", user, UserRole(role).value)

    def get_user_profile(self, user: str) -> UserProfile | None:
        data = self._call("getUserProfile", user)
        return UserProfile.from_wire(data) if data else None

    # Packages

    def get_all_packages(self) -> list[Package]:
        return [Package.from_wire(p) for p in self._call("getAllPackages") or []]

    def get_package(self, package_id: int) -> Package:
        return Package.from_wire(self._call("getPackage", package_id))

    def create_package(self, name: str, price_usd: int) -> Package:
        return Package.from_wire(self._call("createPackage", name, price_usd))

    def update_package(self, package_id: int, name: str, price_usd: int) -> Package:
        return Package.from_wire(self._call("updatePackage", package_id, name, price_usd))

    # Subscribers

    def get_all_active_subscribers(self) -> list[Subscriber]:
        return [Subscriber.from_wire(s) for s in self._call("getAllActiveSubscribers") or []]

    def get_subscriber(self, phone: str) -> Subscriber:
        return Subscriber.from_wire(self._call("getSubscriber", phone))

    def create_subscriber(self, full_name, phone, package_id, subscription_start_date) -> Subscriber:
        return Subscriber.from_wire(
            self._call("createSubscriber", full_name, phone, package_id, subscription_start_date)
        )

    def update_subscriber(self, phone, full_name, package_id, active) -> Subscriber:
        return Subscriber.from_wire(self._call("updateSubscriber", phone, full_name, package_id, active))

    def bulk_create_subscribers(self, data: BulkImportInput) -> list[BulkImportResult]:
        return [BulkImportResult.from_wire(r) for r in self._call("bulkCreateSubscribers", data.to_wire()) or []]

    def delete_all_subscribers(self) -> DeleteAllSubscribersResult:
        return DeleteAllSubscribersResult.from_wire(self._call("deleteAllSubscribers"))

    def is_phone_number_taken(self, phone: str) -> bool:
        return bool(self._call("isPhoneNumberTaken", phone))

    # Billing

    def get_billing_state(self, phone: str) -> list[BillingEntry]:
        return [BillingEntry.from_wire(e) for e in self._call("getBillingState", phone) or []]

    def set_month_billing_status(self, phone, year, month, due, paid) -> None:
        self._call("setMonthBillingStatus", phone, year, month, due, paid)

    def get_total_due_for_month(self, year: int, month: int) -> int:
        return int(self._call("getTotalDueForMonth", year, month) or 0)

    def get_total_due_for_year(self, year: int) -> int:
        return int(self._call("getTotalDueForYear", year) or 0)

    def get_subscriber_billing_summary(self, phone: str) -> SubscriberBillingSummary:
        return SubscriberBillingSummary.from_wire(self._call("getSubscriberBillingSummary", phone))

    def fetch_monthly_bills(self, year: int, month: int) -> MonthlyBillsResult:
        return MonthlyBillsResult.from_wire(self._call("fetchMonthlyBills", year, month))

    def get_caller_monthly_due(self, year: int, month: int) -> CallerPaymentDue:
        return CallerPaymentDue.from_wire(self._call("getCallerMonthlyDue", year, month))

    # Subscriber self-service

    def login_claim_subscriber(self, data: ClaimSubscriberInput) -> ClaimResult:
        return ClaimResult.from_wire(self._call("loginClaimSubscriber", data.to_wire()) or {})


def create_actor(identity: Identity | None, settings: Settings) -> BillingBackend:
    if identity is None:
        raise ActorUnavailableError()
    if settings.backend == "http":
        return HttpBackend(identity, settings.api_url, timeout=settings.request_timeout)

    from local_backend import LocalBackend

    return LocalBackend(identity)
