"""
Kenyan mobile number handling. The only place numbers are normalised.
"""
import re

from matatupay.errors import InvalidPhoneNumber

_LOCAL = re.compile(r"^0[17]\d{8}$")


def normalize_phone(phone_number: str) -> str:
    """
    Canonical local form 07XXXXXXXX / 01XXXXXXXX.

    Accepts +2547XXXXXXXX, 2547XXXXXXXX, 07XXXXXXXX and 7XXXXXXXX (and the 1XX
    ranges), with any separators.
    """
    if not phone_number:
        raise InvalidPhoneNumber("Phone number is required")

    digits = re.sub(r"\D", "", str(phone_number))

    if digits.startswith("254") and len(digits) == 12:
        local = "0" + digits[3:]
    elif digits.startswith("0") and len(digits) == 10:
        local = digits
    elif len(digits) == 9:
        local = "0" + digits
    else:
        raise InvalidPhoneNumber(f"Invalid Kenyan phone number: {phone_number}")

    if not _LOCAL.match(local):
        raise InvalidPhoneNumber(f"Invalid Kenyan phone number: {phone_number}")
    return local


def is_valid_phone(phone_number: str) -> bool:
    try:
        normalize_phone(phone_number)
    except InvalidPhoneNumber:
        return False
    return True


def to_international(phone_number: str) -> str:
    """2547XXXXXXXX, the form the gateway expects."""
    return "254" + normalize_phone(phone_number)[1:]
