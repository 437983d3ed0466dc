"""
PromptPay payment sessions — create, poll, verify.
"""

import asyncio
import logging
import re
from typing import Any, Optional

from kusheet.errors import InvalidFormatError, InvalidInputError, KuSheetError, PaymentExpiredError
from kusheet.models.payment import PromptPaySession, PromptPayStatus
from kusheet.transport.http import HttpClient

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r"[0-9]{10,12}")
POLL_INTERVAL = 5.0
SESSION_TTL = 30 * 60.0


class PaymentsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def create_session(self, items: list[dict[str, Any]], discount_code: Optional[str] = None) -> PromptPaySession:
        """Create orders for the cart items and open a PromptPay session for the total."""
        if not items:
            raise InvalidInputError("Items are required")
        body: dict[str, Any] = {"items": items}
        if discount_code:
            body["discountCode"] = discount_code
        return PromptPaySession.model_validate(await self._http.post("/payments/promptpay/create", body))

    async def get_status(self, session_id: str) -> PromptPayStatus:
        return PromptPayStatus.model_validate(await self._http.get(f"/payments/promptpay/status/{session_id}"))

    async def verify(
        self, session_id: str, reference_number: str, amount: float, bank_name: str = "Unknown",
    ) -> dict[str, Any]:
        """Confirm a transfer with the bank reference number from the payer's slip."""
        reference = (reference_number or "").strip()
        if not session_id or not reference or not amount:
            raise InvalidInputError("Session ID, reference number, and amount are required")
        if not REFERENCE_RE.fullmatch(reference):
            raise InvalidFormatError("Reference number must be 10-12 digits", {"reference_number": reference})
        return await self._http.post("/payments/promptpay/verify", {
            "sessionId": session_id,
            "referenceNumber": reference,
            "amount": amount,
            "bankName": bank_name.strip() or "Unknown",
        })

    async def wait_for_completion(
        self, session_id: str, interval: float = POLL_INTERVAL, expires_after: float = SESSION_TTL,
    ) -> PromptPayStatus:
        """Poll the session until it completes; raise ``PaymentExpiredError`` after ``expires_after`` seconds."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + expires_after
        while True:
            try:
                status = await self.get_status(session_id)
            except KuSheetError as e:
                logger.warning("Error checking payment status for %s: %r", session_id, e)
            else:
                if status.is_completed:
                    return status
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PaymentExpiredError(session_id)
            await asyncio.sleep(min(interval, remaining))
