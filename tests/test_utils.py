from datetime import date

import pytest

import utils
from models import Package, Subscriber


@pytest.mark.parametrize(
    "value, expected",
    [
        ("0912345678", True),
        ("09 123 45678", True),
        ("(091) 234-5678", True),
        ("091234567", False),
        ("09123456789", False),
        ("0812345678", False),
        ("", False),
        ("phone", False),
    ],
)
def test_is_valid_phone(value, expected):
    assert utils.is_valid_phone(value) is expected


def test_phone_validation_error_per_failure_mode():
    assert utils.phone_validation_error("") == "يرجى إدخال رقم الهاتف"
    assert utils.phone_validation_error("abc") == "يرجى إدخال رقم الهاتف"
    assert utils.phone_validation_error("0812345678") == "يجب أن يبدأ الرقم بـ 09"
    assert utils.phone_validation_error("0912") == "يجب إدخال 6 أرقام إضافية"
    assert utils.phone_validation_error("091234567890") == "الرقم يجب أن يكون 10 أرقام فقط"
    assert utils.phone_validation_error("0912345678") is None


def test_format_phone_display():
    assert utils.format_phone_display("0912345678") == "0912 345 678"
    assert utils.format_phone_display("placeholder-4") == "placeholder-4"


def test_placeholder_phone():
    assert utils.is_placeholder_phone("placeholder-42") is True
    assert utils.is_placeholder_phone("0912345678") is False
    assert utils.placeholder_phone(42) == "placeholder-42"


@pytest.mark.parametrize(
    "cents, expected",
    [
        (500, "$5.00"),
        (0, "$0.00"),
        (1, "$0.01"),
        (-500, "-$5.00"),
        (-1, "-$0.01"),
        (123456789, "$1,234,567.89"),
        (10**15, "$10,000,000,000,000.00"),
    ],
)
def test_format_usd(cents, expected):
    assert utils.format_usd(cents) == expected


def test_dollars_to_cents():
    assert utils.dollars_to_cents(25) == 2500
    assert utils.dollars_to_cents("12.345") == 1235
    assert utils.dollars_to_cents(0.1) == 10
    with pytest.raises(ValueError):
        utils.dollars_to_cents("ten")


def test_whatsapp_phone_needs_seven_digits():
    assert utils.is_valid_whatsapp_phone("+964 770 123 4567") is True
    assert utils.is_valid_whatsapp_phone("123-4567") is True
    assert utils.is_valid_whatsapp_phone("123456") is False
    assert utils.is_valid_whatsapp_phone("   ") is False
    assert utils.is_valid_whatsapp_phone("placeholder-12") is False


def test_whatsapp_url():
    assert utils.whatsapp_url("0912 345 678") == "https://wa.me/0912345678"
    with pytest.raises(ValueError):
        utils.whatsapp_url("12")


def test_date_ns_conversion():
    ns = utils.date_to_ns(date(2024, 1, 1))
    assert ns == 1_704_067_200_000_000_000
    assert utils.ns_to_date(ns) == date(2024, 1, 1)


def test_year_options_centered_on_current_year():
    assert utils.year_options(date(2025, 6, 1)) == [2023, 2024, 2025, 2026, 2027]


def test_parse_bulk_names():
    text = "Ali Hassan, Sara Kareem\n\n  Omar  \nAli Hassan,,\n"
    assert utils.parse_bulk_names(text) == ["Ali Hassan", "Sara Kareem", "Omar"]
    assert utils.parse_bulk_names("") == []


def test_subscribers_csv_uses_package_names_and_prices():
    packages = [Package(id=1, name="Basic", price_usd=2500)]
    subs = [
        Subscriber(id=7, full_name="Ali", phone="0912345678", package_id=1,
                   subscription_start_date=1_704_067_200_000_000_000, active=True),
        Subscriber(id=8, full_name="Sara", phone="placeholder-8", package_id=99,
                   subscription_start_date=1_704_067_200_000_000_000, active=True),
    ]
    lines = utils.subscribers_to_csv_bytes(subs, packages).decode("utf-8").splitlines()
    assert lines[0] == "id,full_name,phone,package,price,start_date,status"
    assert lines[1].startswith("7,Ali,0912345678,Basic,$25.00,2024-01-01,Active")
    assert ",Unknown,$0.00," in lines[2]


def test_subscribers_frame_empty_has_columns():
    df = utils.subscribers_frame([], [])
    assert df.empty
    assert "phone" in df.columns
