"""
kusheet — KU SHEET client SDK for Python.

PromptPay QR payloads for study-sheet checkout, and a group chat client
that merges socket, SSE and REST delivery into one message list.
"""

from kusheet.client import KuSheet, AsyncKuSheet
from kusheet.chat import ChatState, GroupChat, MessageList
from kusheet.messages import ChatAPI
from kusheet.notifications import NotificationFeed, NotificationsAPI
from kusheet.payments import PaymentsAPI
from kusheet.errors import (
    KuSheetError,
    PayloadError,
    InvalidInputError,
    InvalidFormatError,
    HttpError,
    AuthError,
    ForbiddenError,
    ConnectionError,
    SendError,
    PaymentExpiredError,
)
from kusheet.promptpay.tlv import tlv, crc16
from kusheet.promptpay.payload import (
    to_promptpay_mobile,
    build_promptpay_payload,
    validate_promptpay_payload,
    debug_promptpay_payload,
)
from kusheet.promptpay.qr import get_qr_image_url_from_payload, get_promptpay_qr

__version__ = "0.1.0"
__all__ = [
    "KuSheet",
    "AsyncKuSheet",
    "ChatState",
    "GroupChat",
    "MessageList",
    "ChatAPI",
    "NotificationFeed",
    "NotificationsAPI",
    "PaymentsAPI",
    "KuSheetError",
    "PayloadError",
    "InvalidInputError",
    "InvalidFormatError",
    "HttpError",
    "AuthError",
    "ForbiddenError",
    "ConnectionError",
    "SendError",
    "PaymentExpiredError",
    "tlv",
    "crc16",
    "to_promptpay_mobile",
    "build_promptpay_payload",
    "validate_promptpay_payload",
    "debug_promptpay_payload",
    "get_qr_image_url_from_payload",
    "get_promptpay_qr",
]
