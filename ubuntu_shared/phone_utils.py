import re

SA_COUNTRY_CODE = "+27"
_SA_E164 = re.compile(r"^\+27\d{9}$")


class InvalidPhoneError(ValueError):
    """Raised when a value cannot be read as a South African phone number."""


def normalize_sa_phone(phone: str) -> str:
    """Normalize South African numbers to the canonical ``+27XXXXXXXXX`` form.

    Accepts local (``082 123 4567``), international (``+27 82 123 4567``),
    ``0027`` dialling-prefix and bare ``27`` forms; separators are ignored.
    """
    if not phone:
        raise InvalidPhoneError("Phone number is required")
    raw = re.sub(r"[^\d+]", "", phone)
    if raw.startswith("+"):
        candidate = raw
    elif raw.startswith("00"):
        candidate = "+" + raw[2:]
    elif raw.startswith("0"):
        # 0821234567 -> +27821234567
        candidate = SA_COUNTRY_CODE + raw[1:]
    elif raw.startswith("27") and len(raw) == 11:
        candidate = "+" + raw
    else:
        raise InvalidPhoneError(f"Unrecognised phone number format: {mask_phone(raw)}")
    if not _SA_E164.match(candidate):
        raise InvalidPhoneError("Invalid South African phone number")
    return candidate


def mask_phone(phone: str, visible_digits: int = 4) -> str:
    if not phone:
        return ""
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]
