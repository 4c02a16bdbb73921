import pytest

from ubuntu_shared import InvalidPhoneError, mask_phone, normalize_sa_phone


@pytest.mark.parametrize(
    "raw",
    ["0821234567", "082 123 4567", "+27821234567", "+27 82 123 4567", "27821234567", "0027821234567", "082-123-4567"],
)
def test_equivalent_forms_normalize_to_same_number(raw):
    assert normalize_sa_phone(raw) == "+27821234567"


@pytest.mark.parametrize("raw", ["", "12345", "+4915112345678", "08212345", "+278212345678", "abc"])
def test_invalid_numbers_are_rejected(raw):
    with pytest.raises(InvalidPhoneError):
        normalize_sa_phone(raw)


def test_landline_numbers_normalize_too():
    assert normalize_sa_phone("011 456 7890") == "+27114567890"


def test_mask_phone_keeps_last_digits():
    assert mask_phone("+27821234567") == "********4567"
    assert mask_phone("+27821234567", visible_digits=2) == "**********67"
    assert mask_phone("123") == "123"
    assert mask_phone("") == ""
