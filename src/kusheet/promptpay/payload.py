"""
PromptPay EMVCo Merchant Presented QR payloads.

Builds the dynamic (amount-bearing) payload for a Thai mobile number and
checks an existing payload against its CRC trailer.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any, NamedTuple, Union

from kusheet.errors import InvalidFormatError, InvalidInputError
from kusheet.promptpay.tlv import TLVField, crc16, iter_tlv, tlv

logger = logging.getLogger(__name__)

PROMPTPAY_GUID = "A000000677010111"
CURRENCY_THB = "764"
COUNTRY_TH = "TH"
CRC_PLACEHOLDER = "6304"
PAYLOAD_PREFIX = "000201"
MIN_PAYLOAD_LENGTH = 50

DEFAULT_MERCHANT_NAME = "KU SHEET"
DEFAULT_CITY = "BANGKOK"
MERCHANT_NAME_MAX = 25
CITY_MAX = 15

THAI_PHONE_RE = re.compile(r"0[2-9][0-9]{7,8}")

Amount = Union[int, float, str, Decimal]


class PayloadReport(NamedTuple):
    fields: list[TLVField]
    expected_crc: str
    actual_crc: str
    is_valid: bool


def to_promptpay_mobile(mobile: Any) -> str:
    """Normalize a Thai mobile number to the 13-digit ``0066XXXXXXXXX`` form. Does not validate."""
    digits = re.sub(r"[^0-9]", "", str(mobile))
    if digits.startswith("0066"):
        return digits
    if digits.startswith("0"):
        return f"0066{digits[1:]}"
    if digits.startswith("66"):
        return f"00{digits}"
    return f"0066{digits}"


def format_amount(amount: Amount) -> str:
    """Render an amount with exactly two decimals, rounding half up."""
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(float(amount))
    except (TypeError, ValueError, OverflowError, InvalidOperation):
        raise InvalidFormatError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise InvalidFormatError(f"Invalid amount: {amount!r}")
    # enough precision for every integer digit plus the two decimals
    context = Context(prec=max(28, value.adjusted() + 3))
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP, context=context))


def build_promptpay_payload(
    mobile_number: Any,
    amount: Amount,
    merchant_name: str = DEFAULT_MERCHANT_NAME,
    city: str = DEFAULT_CITY,
) -> str:
    if not mobile_number or not amount:
        raise InvalidInputError("Mobile number and amount are required")
    if not THAI_PHONE_RE.fullmatch(str(mobile_number)):
        raise InvalidFormatError("Invalid Thai mobile number format", {"mobile_number": str(mobile_number)})

    promptpay_id = to_promptpay_mobile(mobile_number)
    body = (
        tlv("00", "01")
        + tlv("01", "12")
        + tlv("29", tlv("00", PROMPTPAY_GUID) + tlv("01", promptpay_id))
        + tlv("53", CURRENCY_THB)
        + tlv("54", format_amount(amount))
        + tlv("58", COUNTRY_TH)
        + tlv("59", merchant_name[:MERCHANT_NAME_MAX])
        + tlv("60", city[:CITY_MAX])
        + CRC_PLACEHOLDER
    )
    return body + crc16(body)


def validate_promptpay_payload(payload: Any) -> bool:
    if not isinstance(payload, str):
        return False
    if len(payload) < MIN_PAYLOAD_LENGTH or not payload.startswith(PAYLOAD_PREFIX):
        return False
    return crc16(payload[:-4]) == payload[-4:]


def debug_promptpay_payload(payload: str) -> PayloadReport:
    """Decode the TLV fields of a payload for diagnostics. Never raises on malformed input."""
    fields = list(iter_tlv(payload))
    for field in fields:
        value = field.value if len(field.value) <= 24 else field.value[:24] + "..."
        logger.debug("PromptPay TLV tag=%s len=%d value=%s", field.tag, field.length, value)
    expected = crc16(payload[:-4])
    actual = payload[-4:]
    is_valid = expected == actual
    logger.debug("PromptPay CRC expected=%s actual=%s valid=%s", expected, actual, is_valid)
    return PayloadReport(fields=fields, expected_crc=expected, actual_crc=actual, is_valid=is_valid)
