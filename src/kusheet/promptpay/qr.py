"""
QR rendering for PromptPay payloads.

``get_qr_image_url_from_payload`` points at the public qrserver.com image
API; ``render_qr_png`` draws the same code locally with ``qrcode``.
"""

import base64
from io import BytesIO
from urllib.parse import quote

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from kusheet.promptpay.payload import Amount, build_promptpay_payload

QR_SERVICE_URL = "https://api.qrserver.com/v1/create-qr-code/"
QR_MARGIN = 2
QR_ECC = "M"
DEFAULT_SIZE = 300

# characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


def get_qr_image_url_from_payload(payload: str, size: int = DEFAULT_SIZE) -> str:
    data = quote(payload, safe=_URI_COMPONENT_SAFE)
    return f"{QR_SERVICE_URL}?size={size}x{size}&data={data}&format=png&margin={QR_MARGIN}&ecc={QR_ECC}"


def get_promptpay_qr(mobile_number: str, amount: Amount, size: int = DEFAULT_SIZE) -> str:
    """Image URL for a PromptPay payment. Builder errors propagate unchanged."""
    payload = build_promptpay_payload(mobile_number, amount)
    return get_qr_image_url_from_payload(payload, size)


def render_qr_png(payload: str, box_size: int = 8) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=QR_MARGIN)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_qr_data_uri(payload: str, box_size: int = 8) -> str:
    encoded = base64.b64encode(render_qr_png(payload, box_size)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
