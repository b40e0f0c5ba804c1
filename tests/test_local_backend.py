import pytest

from backend import BackendError, Identity
from local_backend import UNAUTHORIZED, LocalBackend
from models import BulkImportInput, ClaimSubscriberInput, Err, Ok, UserProfile, UserRole

START = 1_704_067_200_000_000_000  # 2024-01-01


# ---------- roles / profiles ----------

def test_seeded_owner_is_admin(admin):
    assert admin.get_caller_user_role() == UserRole.admin
    assert admin.is_caller_admin() is True


def test_unknown_principal_is_guest(seeded_db):
    stranger = LocalBackend(Identity(principal="nobody"))
    assert stranger.get_caller_user_role() == UserRole.guest
    assert stranger.get_caller_user_profile() is None


def test_registered_member_is_user(regular_user):
    assert regular_user.get_caller_user_role() == UserRole.user
    assert regular_user.is_caller_admin() is False


def test_profile_requires_name_and_phone(regular_user):
    with pytest.raises(BackendError):
        regular_user.save_caller_user_profile(UserProfile(name=" ", phone="0912345678"))
    regular_user.save_caller_user_profile(UserProfile(name="  Ali ", phone="0912345678"))
    assert regular_user.get_caller_user_profile() == UserProfile(name="Ali", phone="0912345678")


def test_assign_role_is_admin_only(admin, regular_user):
    with pytest.raises(BackendError, match=UNAUTHORIZED):
        regular_user.assign_caller_user_role("ali", UserRole.admin)

    admin.assign_caller_user_role("ali", UserRole.admin)
    assert regular_user.is_caller_admin() is True


def test_get_user_profile_of_others_needs_admin(admin, regular_user):
    regular_user.save_caller_user_profile(UserProfile(name="Ali", phone="0912345678"))
    assert regular_user.get_user_profile("ali").name == "Ali"
    assert admin.get_user_profile("ali").name == "Ali"
    assert admin.get_user_profile("missing") is None
    with pytest.raises(BackendError, match=UNAUTHORIZED):
        regular_user.get_user_profile("owner")


# ---------- packages ----------

def test_create_and_update_package(admin, basic_package):
    assert basic_package.price_usd == 2500
    updated = admin.update_package(basic_package.id, "Basic 20Mb", 3000)
    assert (updated.name, updated.price_usd) == ("Basic 20Mb", 3000)
    assert admin.get_all_packages() == [updated]


def test_package_validation(admin, regular_user):
    with pytest.raises(BackendError, match="negative"):
        admin.create_package("Broken", -1)
    with pytest.raises(BackendError, match="Package not found"):
        admin.get_package(999)
    with pytest.raises(BackendError, match=UNAUTHORIZED):
        regular_user.create_package("Free", 0)


# ---------- subscribers ----------

def test_create_subscriber_rejects_duplicate_phone(admin, subscriber, basic_package):
    assert admin.is_phone_number_taken("0912345678") is True
    assert admin.is_phone_number_taken("0998765432") is False
    with pytest.raises(BackendError, match="already registered"):
        admin.create_subscriber("Someone Else", "0912345678", basic_package.id, START)


def test_create_subscriber_requires_known_package(admin):
    with pytest.raises(BackendError, match="Package not found"):
        admin.create_subscriber("Ali", "0912345678", 42, START)


def test_deactivated_subscriber_leaves_active_list(admin, subscriber):
    assert admin.get_all_active_subscribers() == [subscriber]
    updated = admin.update_subscriber(subscriber.phone, "Ali H.", subscriber.package_id, False)
    assert updated.active is False and updated.full_name == "Ali H."
    assert admin.get_all_active_subscribers() == []
    # Still reachable by phone for reactivation.
    assert admin.get_subscriber(subscriber.phone).active is False


def test_subscriber_reads_are_restricted(regular_user, subscriber):
    with pytest.raises(BackendError, match="Unauthorized"):
        regular_user.get_subscriber(subscriber.phone)
    with pytest.raises(BackendError, match=UNAUTHORIZED):
        regular_user.get_all_active_subscribers()

    regular_user.save_caller_user_profile(UserProfile(name="Ali", phone=subscriber.phone))
    assert regular_user.get_subscriber(subscriber.phone) == subscriber
    assert regular_user.get_billing_state(subscriber.phone) == []


def test_bulk_import_assigns_placeholders_and_skips_existing(admin, subscriber, basic_package):
    results = admin.bulk_create_subscribers(
        BulkImportInput(names="Sara Kareem, Omar\nAli Hassan", package_id=basic_package.id,
                        subscription_start_date=START)
    )
    assert [r.name for r in results] == ["Sara Kareem", "Omar", "Ali Hassan"]

    sara, omar, ali = (r.outcome for r in results)
    assert isinstance(sara, Ok) and sara.value.phone == f"placeholder-{sara.value.id}"
    assert isinstance(omar, Ok) and omar.value.phone == f"placeholder-{omar.value.id}"
    assert ali == Err("Subscriber already exists")
    assert len(admin.get_all_active_subscribers()) == 3


def test_delete_all_subscribers_reports_count_and_clears_billing(admin, subscriber, basic_package):
    admin.create_subscriber("Sara", "0998765432", basic_package.id, START)
    admin.set_month_billing_status(subscriber.phone, 2024, 1, True, False)

    result = admin.delete_all_subscribers()
    assert result.subscribers_deleted == 2
    assert admin.get_all_active_subscribers() == []
    assert admin.get_total_due_for_year(2024) == 0
    # Packages survive.
    assert len(admin.get_all_packages()) == 1


# ---------- billing ----------

def test_billing_state_groups_by_year(admin, subscriber):
    admin.set_month_billing_status(subscriber.phone, 2024, 2, True, True)
    admin.set_month_billing_status(subscriber.phone, 2024, 1, True, False)
    admin.set_month_billing_status(subscriber.phone, 2023, 12, True, False)

    entries = admin.get_billing_state(subscriber.phone)
    assert [e.year for e in entries] == [2023, 2024]
    assert [m.month for m in entries[1].months] == [1, 2]
    assert entries[1].months[1].paid is True


def test_set_month_billing_status_overwrites(admin, subscriber):
    admin.set_month_billing_status(subscriber.phone, 2024, 1, True, True)
    admin.set_month_billing_status(subscriber.phone, 2024, 1, False, False)
    (entry,) = admin.get_billing_state(subscriber.phone)
    assert (entry.months[0].due, entry.months[0].paid) == (False, False)


def test_set_month_billing_status_validates(admin, regular_user, subscriber):
    with pytest.raises(BackendError, match="Invalid month"):
        admin.set_month_billing_status(subscriber.phone, 2024, 13, True, False)
    with pytest.raises(BackendError, match="Subscriber not found"):
        admin.set_month_billing_status("0900000000", 2024, 1, True, False)
    with pytest.raises(BackendError, match=UNAUTHORIZED):
        regular_user.set_month_billing_status(subscriber.phone, 2024, 1, True, False)


def test_totals_count_due_unpaid_months_of_active_subscribers(admin, subscriber, basic_package):
    premium = admin.create_package("Premium", 4000)
    sara = admin.create_subscriber("Sara", "0998765432", premium.id, START)
    omar = admin.create_subscriber("Omar", "0944444444", basic_package.id, START)

    admin.set_month_billing_status(subscriber.phone, 2024, 1, True, False)
    admin.set_month_billing_status(sara.phone, 2024, 1, True, False)
    admin.set_month_billing_status(sara.phone, 2024, 2, True, True)
    admin.set_month_billing_status(omar.phone, 2024, 1, True, False)
    admin.update_subscriber(omar.phone, omar.full_name, omar.package_id, False)

    assert admin.get_total_due_for_month(2024, 1) == 6500
    assert admin.get_total_due_for_month(2024, 2) == 0
    assert admin.get_total_due_for_year(2024) == 6500
    assert admin.get_total_due_for_year(2023) == 0


def test_billing_summary(admin, subscriber):
    admin.set_month_billing_status(subscriber.phone, 2024, 1, True, True)
    admin.set_month_billing_status(subscriber.phone, 2024, 2, True, False)
    admin.set_month_billing_status(subscriber.phone, 2024, 3, True, False)

    summary = admin.get_subscriber_billing_summary(subscriber.phone)
    assert summary.package_name == "Basic 10Mb"
    assert (summary.months_due, summary.months_paid) == (3, 1)
    assert summary.total_outstanding == 5000


def test_monthly_bills_lists_every_active_subscriber(admin, subscriber, basic_package):
    admin.create_subscriber("Sara", "0998765432", basic_package.id, START)
    admin.set_month_billing_status(subscriber.phone, 2024, 5, True, False)

    bills = admin.fetch_monthly_bills(2024, 5)
    assert (bills.year, bills.month) == (2024, 5)
    assert [(b.full_name, b.amount_due) for b in bills.subscribers] == [("Ali Hassan", 2500), ("Sara", 0)]


def test_caller_monthly_due(regular_user, admin, subscriber):
    with pytest.raises(BackendError, match="does not have a user profile"):
        regular_user.get_caller_monthly_due(2024, 1)

    regular_user.save_caller_user_profile(UserProfile(name="Ali", phone="0900000000"))
    with pytest.raises(BackendError, match="does not have an active subscription"):
        regular_user.get_caller_monthly_due(2024, 1)

    regular_user.save_caller_user_profile(UserProfile(name="Ali", phone=subscriber.phone))
    due = regular_user.get_caller_monthly_due(2024, 1)
    assert (due.due, due.paid, due.amount_cents) == (False, False, 0)

    admin.set_month_billing_status(subscriber.phone, 2024, 1, True, False)
    assert regular_user.get_caller_monthly_due(2024, 1).amount_cents == 2500


# ---------- claim ----------

def test_claim_by_phone_links_profile_and_role(regular_user, subscriber):
    result = regular_user.login_claim_subscriber(ClaimSubscriberInput(name="whatever", phone="0912-345-678"))
    assert result.outcome == Ok(subscriber)
    assert result.claimed_phone == "0912345678"
    assert regular_user.get_caller_user_profile() == UserProfile(name="Ali Hassan", phone="0912345678")
    assert regular_user.get_caller_user_role() == UserRole.user


def test_claim_placeholder_by_name_sets_real_phone(admin, regular_user, basic_package):
    (imported,) = admin.bulk_create_subscribers(
        BulkImportInput(names="Sara Kareem", package_id=basic_package.id, subscription_start_date=START)
    )
    result = regular_user.login_claim_subscriber(ClaimSubscriberInput(name="Sara Kareem", phone="0998765432"))
    assert isinstance(result.outcome, Ok)
    assert result.outcome.value.id == imported.outcome.value.id
    assert result.outcome.value.phone == "0998765432"
    assert admin.is_phone_number_taken(f"placeholder-{imported.outcome.value.id}") is False


def test_claim_placeholder_by_id(admin, regular_user, basic_package):
    (imported,) = admin.bulk_create_subscribers(
        BulkImportInput(names="Omar", package_id=basic_package.id, subscription_start_date=START)
    )
    sub_id = imported.outcome.value.id
    result = regular_user.login_claim_subscriber(ClaimSubscriberInput(name="", phone="0944444444", subscriber_id=sub_id))
    assert result.outcome.value.phone == "0944444444"


def test_claim_errors(regular_user, subscriber):
    invalid = regular_user.login_claim_subscriber(ClaimSubscriberInput(name="Ali", phone="12345"))
    assert invalid.outcome == Err("Invalid phone number")

    missing = regular_user.login_claim_subscriber(ClaimSubscriberInput(name="Nobody", phone="0900000000"))
    assert isinstance(missing.outcome, Err) and missing.claimed_phone is None

    mismatch = regular_user.login_claim_subscriber(
        ClaimSubscriberInput(name="", phone="0900000000", subscriber_id=subscriber.id)
    )
    assert mismatch.outcome == Err("Phone number does not match this subscriber")

    assert isinstance(regular_user.login_claim_subscriber(ClaimSubscriberInput(name="", phone=subscriber.phone)).outcome, Ok)
    other = LocalBackend(Identity(principal="someone"))
    taken = other.login_claim_subscriber(ClaimSubscriberInput(name="", phone=subscriber.phone))
    assert taken.outcome == Err("This subscriber is already linked to another account")


def test_claim_does_not_demote_admin(admin, subscriber):
    result = admin.login_claim_subscriber(ClaimSubscriberInput(name="", phone=subscriber.phone))
    assert isinstance(result.outcome, Ok)
    assert admin.is_caller_admin() is True
