"""
queries.py
Remote-call hooks: every backend operation paired with a cached query or a mutation
plus the cache keys it invalidates.

The cache is per browser session (kept in st.session_state) and keyed by operation
name plus parameters, e.g. ("billing", "0912345678"). Invalidation is by key prefix.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import streamlit as st

import config
from backend import ActorUnavailableError, BackendError, BillingBackend, Identity, create_actor, unwrap
from models import (
    BillingEntry,
    BulkImportInput,
    BulkImportResult,
    CallerPaymentDue,
    ClaimSubscriberInput,
    DeleteAllSubscribersResult,
    MonthlyBillsResult,
    Package,
    Subscriber,
    SubscriberBillingSummary,
    UserProfile,
    UserRole,
)

logger = logging.getLogger(__name__)

QUERY_CLIENT_KEY = "query_client"


class QueryClient:
    """Keyed result cache with prefix invalidation and a per-query retry policy."""

    def __init__(self, retry: int = 3, retry_delay: float = 0.25, sleep: Callable[[float], None] = time.sleep):
        self.retry = retry
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._cache: dict[tuple, Any] = {}

    def __contains__(self, key: tuple) -> bool:
        return key in self._cache

    def _attempts(self, retry: bool | int) -> int:
        if retry is True:
            return 1 + self.retry
        if retry is False:
            return 1
        return 1 + int(retry)

    def fetch(self, key: tuple, fn: Callable[[], Any], retry: bool | int = True) -> Any:
        if key in self._cache:
            return self._cache[key]

        attempts = self._attempts(retry)
        for attempt in range(1, attempts + 1):
            try:
                value = fn()
                break
            except ActorUnavailableError:
                raise
            except BackendError as e:
                if attempt == attempts:
                    raise
                logger.warning("Query %s failed (attempt %d/%d): %s", key, attempt, attempts, e.message)
                self._sleep(self.retry_delay * attempt)

        self._cache[key] = value
        return value

    def set(self, key: tuple, value: Any) -> None:
        self._cache[key] = value

    def invalidate(self, *prefix) -> None:
        n = len(prefix)
        for key in [k for k in self._cache if k[:n] == prefix]:
            del self._cache[key]

    def clear(self) -> None:
        self._cache.clear()


def get_client() -> QueryClient:
    if QUERY_CLIENT_KEY not in st.session_state:
        settings = config.load_settings()
        st.session_state[QUERY_CLIENT_KEY] = QueryClient(
            retry=settings.query_retry, retry_delay=settings.query_retry_delay
        )
    return st.session_state[QUERY_CLIENT_KEY]


def current_identity() -> Identity | None:
    principal = st.session_state.get("principal")
    if not principal:
        return None
    return Identity(principal=principal, token=st.session_state.get("token"))


def get_actor() -> BillingBackend:
    return create_actor(current_identity(), config.load_settings())


def _query(key: tuple, call: Callable[[BillingBackend], Any], retry: bool | int = True):
    return get_client().fetch(key, lambda: call(get_actor()), retry=retry)


def _invalidate(*keys: tuple) -> None:
    client = get_client()
    for key in keys:
        client.invalidate(*key)


# ---------- Profile / role ----------

def caller_user_profile() -> UserProfile | None:
    return _query(("currentUserProfile",), lambda a: a.get_caller_user_profile(), retry=False)


def save_caller_user_profile(profile: UserProfile) -> None:
    get_actor().save_caller_user_profile(profile)
    _invalidate(("currentUserProfile",))


def caller_user_role() -> UserRole:
    return _query(("callerUserRole",), lambda a: a.get_caller_user_role())


def is_caller_admin() -> bool:
    return _query(("isCallerAdmin",), lambda a: a.is_caller_admin())


def user_profile(user: str) -> UserProfile | None:
    return _query(("userProfile", user), lambda a: a.get_user_profile(user))


def assign_user_role(user: str, role: UserRole) -> None:
    get_actor().assign_caller_user_role(user, role)
    _invalidate(("callerUserRole",), ("isCallerAdmin",), ("userProfile", user))


def claim_subscriber(data: ClaimSubscriberInput) -> tuple[Subscriber, str | None]:
    result = get_actor().login_claim_subscriber(data)
    subscriber = unwrap(result.outcome)
    _invalidate(("currentUserProfile",), ("callerUserRole",), ("isCallerAdmin",), ("callerMonthlyDue",))
    return subscriber, result.claimed_phone


# ---------- Packages ----------

def all_packages() -> list[Package]:
    return _query(("packages",), lambda a: a.get_all_packages())


def package(package_id: int) -> Package:
    return _query(("packages", package_id), lambda a: a.get_package(package_id))


def create_package(name: str, price_usd: int) -> Package:
    pkg = get_actor().create_package(name, price_usd)
    _invalidate(("packages",))
    return pkg


def update_package(package_id: int, name: str, price_usd: int) -> Package:
    pkg = get_actor().update_package(package_id, name, price_usd)
    _invalidate(("packages",), ("totals",), ("monthlyBills",), ("billingSummary",))
    return pkg


# ---------- Subscribers ----------

def all_active_subscribers() -> list[Subscriber]:
    return _query(("subscribers",), lambda a: a.get_all_active_subscribers())


def subscriber(phone: str) -> Subscriber:
    return _query(("subscribers", phone), lambda a: a.get_subscriber(phone))


def is_phone_number_taken(phone: str) -> bool:
    # Pre-submit check; never cached.
    return get_actor().is_phone_number_taken(phone)


def create_subscriber(full_name: str, phone: str, package_id: int, subscription_start_date: int) -> Subscriber:
    sub = get_actor().create_subscriber(full_name, phone, package_id, subscription_start_date)
    _invalidate(("subscribers",), ("totals",), ("monthlyBills",))
    return sub


def update_subscriber(phone: str, full_name: str, package_id: int, active: bool) -> Subscriber:
    sub = get_actor().update_subscriber(phone, full_name, package_id, active)
    _invalidate(("subscribers",), ("billing",), ("totals",), ("monthlyBills",), ("billingSummary",))
    return sub


def bulk_create_subscribers(data: BulkImportInput) -> list[BulkImportResult]:
    results = get_actor().bulk_create_subscribers(data)
    _invalidate(("subscribers",), ("monthlyBills",))
    return results


def delete_all_subscribers() -> DeleteAllSubscribersResult:
    result = get_actor().delete_all_subscribers()
    _invalidate(("subscribers",), ("billing",), ("totals",), ("monthlyBills",), ("billingSummary",))
    return result


# ---------- Billing ----------

def billing_state(phone: str) -> list[BillingEntry]:
    return _query(("billing", phone), lambda a: a.get_billing_state(phone))


def set_month_billing_status(phone: str, year: int, month: int, due: bool, paid: bool) -> None:
    get_actor().set_month_billing_status(phone, year, month, due, paid)
    _invalidate(
        ("billing", phone),
        ("totals",),
        ("monthlyBills", year, month),
        ("billingSummary", phone),
        ("callerMonthlyDue", year, month),
    )


def total_due_for_month(year: int, month: int) -> int:
    return _query(("totals", "month", year, month), lambda a: a.get_total_due_for_month(year, month))


def total_due_for_year(year: int) -> int:
    return _query(("totals", "year", year), lambda a: a.get_total_due_for_year(year))


def subscriber_billing_summary(phone: str) -> SubscriberBillingSummary:
    return _query(("billingSummary", phone), lambda a: a.get_subscriber_billing_summary(phone))


def monthly_bills(year: int, month: int) -> MonthlyBillsResult:
    return _query(("monthlyBills", year, month), lambda a: a.fetch_monthly_bills(year, month), retry=False)


def caller_monthly_due(year: int, month: int) -> CallerPaymentDue:
    return _query(("callerMonthlyDue", year, month), lambda a: a.get_caller_monthly_due(year, month), retry=False)
