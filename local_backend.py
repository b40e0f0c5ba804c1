"""
local_backend.py
In-process implementation of the backend contract on top of SQLite (db.py).

Used for development, demos and tests when no remote backend is configured.
It keeps to what the contract needs: role checks, CRUD, and plain sums of
package prices for months that are due and unpaid.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid

import db
import utils
from backend import BackendError, BillingBackend, Identity
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
    MonthStatus,
    Ok,
    Package,
    Subscriber,
    SubscriberBillingSummary,
    SubscriberMonthlyBill,
    UserProfile,
    UserRole,
)

logger = logging.getLogger(__name__)

UNAUTHORIZED = "Unauthorized: Only admins can perform this action"

# Months that count toward totals: due, not paid, subscriber active.
_OUTSTANDING_SQL = """
    SELECT COALESCE(SUM(p.price_usd), 0) AS total
    FROM billing_months b
    JOIN subscribers s ON s.id = b.subscriber_id
    JOIN packages p ON p.id = s.package_id
    WHERE s.active = 1 AND b.due = 1 AND b.paid = 0 AND b.year = ?
"""


def _subscriber(row) -> Subscriber:
    return Subscriber(
        id=row["id"],
        full_name=row["full_name"],
        phone=row["phone"],
        package_id=row["package_id"],
        subscription_start_date=row["subscription_start_date"],
        active=bool(row["active"]),
    )


def _package(row) -> Package:
    return Package(id=row["id"], name=row["name"], price_usd=row["price_usd"])


def _check_month(year: int, month: int) -> None:
    if not 1 <= int(month) <= 12:
        raise BackendError(f"Invalid month: {month}")
    if int(year) < 1:
        raise BackendError(f"Invalid year: {year}")


class LocalBackend(BillingBackend):
    def __init__(self, identity: Identity):
        self.identity = identity

    @property
    def caller(self) -> str:
        return self.identity.principal

    def _require_admin(self) -> None:
        if not self.is_caller_admin():
            raise BackendError(UNAUTHORIZED)

    def _subscriber_row(self, phone: str):
        row = db.fetch_one("SELECT * FROM subscribers WHERE phone = ?", (phone,))
        if not row:
            raise BackendError("Subscriber not found")
        return row

    def _require_package(self, package_id: int):
        row = db.fetch_one("SELECT * FROM packages WHERE id = ?", (int(package_id),))
        if not row:
            raise BackendError("Package not found")
        return row

    def _require_owner_or_admin(self, phone: str) -> None:
        if self.is_caller_admin():
            return
        profile = self.get_caller_user_profile()
        if profile is None or profile.phone != phone:
            raise BackendError("Unauthorized: Can only view your own billing")

    # ---------- Profile / role ----------

    def _profile_of(self, principal: str) -> UserProfile | None:
        row = db.fetch_one("SELECT name, phone FROM user_profiles WHERE principal = ?", (principal,))
        return UserProfile(name=row["name"], phone=row["phone"]) if row else None

    def get_caller_user_profile(self) -> UserProfile | None:
        return self._profile_of(self.caller)

    def save_caller_user_profile(self, profile: UserProfile) -> None:
        if not profile.name.strip() or not profile.phone.strip():
            raise BackendError("Name and phone are required")
        db.execute(
            """
            INSERT INTO user_profiles(principal, name, phone) VALUES(?,?,?)
            ON CONFLICT(principal) DO UPDATE SET name=excluded.name, phone=excluded.phone
            """,
            (self.caller, profile.name.strip(), profile.phone.strip()),
        )

    def get_caller_user_role(self) -> UserRole:
        row = db.fetch_one("SELECT role FROM user_roles WHERE principal = ?", (self.caller,))
        return UserRole(row["role"]) if row else UserRole.guest

    def is_caller_admin(self) -> bool:
        return self.get_caller_user_role() == UserRole.admin

    def assign_caller_user_role(self, user: str, role: UserRole) -> None:
        self._require_admin()
        if not user.strip():
            raise BackendError("User principal is required")
        db.execute(
            """
            INSERT INTO user_roles(principal, role) VALUES(?, ?)
            ON CONFLICT(principal) DO UPDATE SET role=excluded.role
            """,
            (user.strip(), UserRole(role).value),
        )
        logger.info("Role %s assigned to %r by %r", UserRole(role).value, user, self.caller)

    def get_user_profile(self, user: str) -> UserProfile | None:
        if user != self.caller:
            self._require_admin()
        return self._profile_of(user)

    # ---------- Packages ----------

    def get_all_packages(self) -> list[Package]:
        return [_package(r) for r in db.fetch_all("SELECT * FROM packages ORDER BY id ASC")]

    def get_package(self, package_id: int) -> Package:
        return _package(self._require_package(package_id))

    def create_package(self, name: str, price_usd: int) -> Package:
        self._require_admin()
        if not name.strip():
            raise BackendError("Package name is required")
        if int(price_usd) < 0:
            raise BackendError("Price cannot be negative")
        new_id = db.execute("INSERT INTO packages(name, price_usd) VALUES(?, ?)", (name.strip(), int(price_usd)))
        return self.get_package(new_id)

    def update_package(self, package_id: int, name: str, price_usd: int) -> Package:
        self._require_admin()
        self._require_package(package_id)
        if not name.strip():
            raise BackendError("Package name is required")
        if int(price_usd) < 0:
            raise BackendError("Price cannot be negative")
        db.execute(
            "UPDATE packages SET name = ?, price_usd = ? WHERE id = ?",
            (name.strip(), int(price_usd), int(package_id)),
        )
        return self.get_package(package_id)

    # ---------- Subscribers ----------

    def get_all_active_subscribers(self) -> list[Subscriber]:
        self._require_admin()
        rows = db.fetch_all("SELECT * FROM subscribers WHERE active = 1 ORDER BY full_name ASC, id ASC")
        return [_subscriber(r) for r in rows]

    def get_subscriber(self, phone: str) -> Subscriber:
        self._require_owner_or_admin(phone)
        return _subscriber(self._subscriber_row(phone))

    def create_subscriber(self, full_name, phone, package_id, subscription_start_date) -> Subscriber:
        self._require_admin()
        if not full_name.strip() or not phone.strip():
            raise BackendError("Full name and phone are required")
        self._require_package(package_id)
        try:
            new_id = db.execute(
                """
                INSERT INTO subscribers(full_name, phone, package_id, subscription_start_date, active)
                VALUES(?,?,?,?,1)
                """,
                (full_name.strip(), phone.strip(), int(package_id), int(subscription_start_date)),
            )
        except sqlite3.IntegrityError:
            raise BackendError("Phone number already registered") from None
        return _subscriber(db.fetch_one("SELECT * FROM subscribers WHERE id = ?", (new_id,)))

    def update_subscriber(self, phone, full_name, package_id, active) -> Subscriber:
        self._require_admin()
        row = self._subscriber_row(phone)
        if not full_name.strip():
            raise BackendError("Full name is required")
        self._require_package(package_id)
        db.execute(
            "UPDATE subscribers SET full_name = ?, package_id = ?, active = ? WHERE id = ?",
            (full_name.strip(), int(package_id), int(bool(active)), row["id"]),
        )
        return _subscriber(db.fetch_one("SELECT * FROM subscribers WHERE id = ?", (row["id"],)))

    def bulk_create_subscribers(self, data: BulkImportInput) -> list[BulkImportResult]:
        self._require_admin()
        self._require_package(data.package_id)
        existing = {r["full_name"] for r in db.fetch_all("SELECT full_name FROM subscribers")}

        results: list[BulkImportResult] = []
        with db.get_conn() as conn:
            for name in utils.parse_bulk_names(data.names):
                if name in existing:
                    results.append(BulkImportResult(name=name, outcome=Err("Subscriber already exists")))
                    continue
                # Insert with a unique temporary phone, then swap in placeholder-{id}.
                cur = conn.execute(
                    """
                    INSERT INTO subscribers(full_name, phone, package_id, subscription_start_date, active)
                    VALUES(?,?,?,?,1)
                    """,
                    (name, f"pending-{uuid.uuid4().hex}", int(data.package_id), int(data.subscription_start_date)),
                )
                conn.execute(
                    "UPDATE subscribers SET phone = ? WHERE id = ?",
                    (utils.placeholder_phone(cur.lastrowid), cur.lastrowid),
                )
                row = conn.execute("SELECT * FROM subscribers WHERE id = ?", (cur.lastrowid,)).fetchone()
                results.append(BulkImportResult(name=name, outcome=Ok(_subscriber(row))))
                existing.add(name)
        logger.info("Bulk import: %d names, %d created", len(results), sum(isinstance(r.outcome, Ok) for r in results))
        return results

    def delete_all_subscribers(self) -> DeleteAllSubscribersResult:
        self._require_admin()
        deleted = db.execute_count("DELETE FROM subscribers")
        logger.warning("All subscribers deleted by %r (%d rows)", self.caller, deleted)
        return DeleteAllSubscribersResult(subscribers_deleted=deleted)

    def is_phone_number_taken(self, phone: str) -> bool:
        return db.fetch_one("SELECT 1 FROM subscribers WHERE phone = ?", (phone.strip(),)) is not None

    # ---------- Billing ----------

    def get_billing_state(self, phone: str) -> list[BillingEntry]:
        self._require_owner_or_admin(phone)
        row = self._subscriber_row(phone)
        months = db.fetch_all(
            "SELECT year, month, due, paid FROM billing_months WHERE subscriber_id = ? ORDER BY year, month",
            (row["id"],),
        )
        by_year: dict[int, list[MonthStatus]] = {}
        for m in months:
            by_year.setdefault(m["year"], []).append(
                MonthStatus(month=m["month"], due=bool(m["due"]), paid=bool(m["paid"]))
            )
        return [BillingEntry(year=y, months=tuple(ms)) for y, ms in by_year.items()]

    def set_month_billing_status(self, phone, year, month, due, paid) -> None:
        self._require_admin()
        _check_month(year, month)
        row = self._subscriber_row(phone)
        db.execute(
            """
            INSERT INTO billing_months(subscriber_id, year, month, due, paid) VALUES(?,?,?,?,?)
            ON CONFLICT(subscriber_id, year, month) DO UPDATE SET due=excluded.due, paid=excluded.paid
            """,
            (row["id"], int(year), int(month), int(bool(due)), int(bool(paid))),
        )

    def get_total_due_for_month(self, year: int, month: int) -> int:
        self._require_admin()
        _check_month(year, month)
        return db.fetch_one(_OUTSTANDING_SQL + " AND b.month = ?", (int(year), int(month)))["total"]

    def get_total_due_for_year(self, year: int) -> int:
        self._require_admin()
        return db.fetch_one(_OUTSTANDING_SQL, (int(year),))["total"]

    def get_subscriber_billing_summary(self, phone: str) -> SubscriberBillingSummary:
        self._require_owner_or_admin(phone)
        row = db.fetch_one(
            """
            SELECT s.id, s.full_name, s.phone, p.name AS package_name, p.price_usd,
                COALESCE(SUM(b.due), 0) AS months_due,
                COALESCE(SUM(b.paid), 0) AS months_paid,
                COALESCE(SUM(CASE WHEN b.due = 1 AND b.paid = 0 THEN 1 ELSE 0 END), 0) AS months_open
            FROM subscribers s
            JOIN packages p ON p.id = s.package_id
            LEFT JOIN billing_months b ON b.subscriber_id = s.id
            WHERE s.phone = ?
            GROUP BY s.id
            """,
            (phone,),
        )
        if not row:
            raise BackendError("Subscriber not found")
        return SubscriberBillingSummary(
            phone=row["phone"],
            full_name=row["full_name"],
            package_name=row["package_name"],
            monthly_price_usd=row["price_usd"],
            months_due=row["months_due"],
            months_paid=row["months_paid"],
            total_outstanding=row["price_usd"] * row["months_open"],
        )

    def fetch_monthly_bills(self, year: int, month: int) -> MonthlyBillsResult:
        self._require_admin()
        _check_month(year, month)
        rows = db.fetch_all(
            """
            SELECT s.full_name,
                CASE WHEN b.due = 1 AND b.paid = 0 THEN p.price_usd ELSE 0 END AS amount_due
            FROM subscribers s
            JOIN packages p ON p.id = s.package_id
            LEFT JOIN billing_months b ON b.subscriber_id = s.id AND b.year = ? AND b.month = ?
            WHERE s.active = 1
            ORDER BY s.full_name ASC, s.id ASC
            """,
            (int(year), int(month)),
        )
        return MonthlyBillsResult(
            year=int(year),
            month=int(month),
            subscribers=tuple(SubscriberMonthlyBill(full_name=r["full_name"], amount_due=r["amount_due"]) for r in rows),
        )

    def get_caller_monthly_due(self, year: int, month: int) -> CallerPaymentDue:
        _check_month(year, month)
        profile = self.get_caller_user_profile()
        if profile is None:
            raise BackendError("Caller does not have a user profile")
        row = db.fetch_one(
            """
            SELECT s.id, p.price_usd, b.due, b.paid
            FROM subscribers s
            JOIN packages p ON p.id = s.package_id
            LEFT JOIN billing_months b ON b.subscriber_id = s.id AND b.year = ? AND b.month = ?
            WHERE s.phone = ? AND s.active = 1
            """,
            (int(year), int(month), profile.phone),
        )
        if not row:
            raise BackendError("Caller does not have an active subscription")
        due, paid = bool(row["due"]), bool(row["paid"])
        return CallerPaymentDue(
            year=int(year),
            month=int(month),
            amount_cents=row["price_usd"] if due and not paid else 0,
            due=due,
            paid=paid,
        )

    # ---------- Subscriber self-service ----------

    def login_claim_subscriber(self, data: ClaimSubscriberInput) -> ClaimResult:
        phone = utils.sanitize_phone(data.phone)
        if not utils.is_valid_phone(phone):
            return ClaimResult(outcome=Err("Invalid phone number"))

        with db.get_conn() as conn:
            if data.subscriber_id is not None:
                row = conn.execute("SELECT * FROM subscribers WHERE id = ?", (int(data.subscriber_id),)).fetchone()
            else:
                row = conn.execute("SELECT * FROM subscribers WHERE phone = ?", (phone,)).fetchone()
                if row is None and data.name.strip():
                    row = conn.execute(
                        "SELECT * FROM subscribers WHERE full_name = ? AND phone LIKE ? ORDER BY id LIMIT 1",
                        (data.name.strip(), f"{utils.PLACEHOLDER_PREFIX}%"),
                    ).fetchone()
            if row is None:
                return ClaimResult(outcome=Err("No subscriber found with this phone number"))
            if row["claimed_by"] and row["claimed_by"] != self.caller:
                return ClaimResult(outcome=Err("This subscriber is already linked to another account"))

            if row["phone"] != phone:
                if not utils.is_placeholder_phone(row["phone"]):
                    return ClaimResult(outcome=Err("Phone number does not match this subscriber"))
                taken = conn.execute(
                    "SELECT 1 FROM subscribers WHERE phone = ? AND id != ?", (phone, row["id"])
                ).fetchone()
                if taken:
                    return ClaimResult(outcome=Err("Phone number already registered"))

            conn.execute(
                "UPDATE subscribers SET phone = ?, claimed_by = ? WHERE id = ?",
                (phone, self.caller, row["id"]),
            )
            conn.execute(
                """
                INSERT INTO user_profiles(principal, name, phone) VALUES(?,?,?)
                ON CONFLICT(principal) DO UPDATE SET name=excluded.name, phone=excluded.phone
                """,
                (self.caller, row["full_name"], phone),
            )
            # Never demote an admin who claims a subscription.
            conn.execute(
                """
                INSERT INTO user_roles(principal, role) VALUES(?, 'user')
                ON CONFLICT(principal) DO UPDATE SET role=CASE WHEN role='admin' THEN 'admin' ELSE 'user' END
                """,
                (self.caller,),
            )
            claimed = conn.execute("SELECT * FROM subscribers WHERE id = ?", (row["id"],)).fetchone()

        logger.info("Subscriber %s claimed by %r", claimed["id"], self.caller)
        return ClaimResult(outcome=Ok(_subscriber(claimed)), claimed_phone=phone)
