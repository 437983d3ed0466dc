"""
PromptPay payment session models — /payments/promptpay/*.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from kusheet.errors import InvalidInputError
from kusheet.promptpay.payload import DEFAULT_CITY, DEFAULT_MERCHANT_NAME, build_promptpay_payload
from kusheet.promptpay.qr import DEFAULT_SIZE, get_qr_image_url_from_payload


class PromptPayData(BaseModel):
    mobile_number: str = Field(alias="mobileNumber")
    amount: float
    merchant_name: str = Field(default=DEFAULT_MERCHANT_NAME, alias="merchantName")
    city: str = DEFAULT_CITY

    model_config = {"populate_by_name": True}


class PromptPaySession(BaseModel):
    """POST /payments/promptpay/create payload.data"""
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    amount: float = 0
    order_ids: list[int] = Field(default_factory=list, alias="orderIds")
    prompt_pay_data: Optional[PromptPayData] = Field(default=None, alias="promptPayData")
    discount: Optional[dict[str, Any]] = None
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    message: Optional[str] = None

    model_config = {"populate_by_name": True}

    def payload(self) -> str:
        # Fully discounted orders come back without PromptPay data
        if self.prompt_pay_data is None:
            raise InvalidInputError("Session has nothing to pay")
        data = self.prompt_pay_data
        return build_promptpay_payload(
            data.mobile_number, self.amount,
            merchant_name=data.merchant_name, city=data.city,
        )

    def qr_url(self, size: int = DEFAULT_SIZE) -> str:
        return get_qr_image_url_from_payload(self.payload(), size)


class PromptPayStatus(BaseModel):
    """GET /payments/promptpay/status/{sessionId} payload.data"""
    session_id: str = Field(alias="sessionId")
    status: str = "PENDING"
    amount: Optional[float] = None
    is_completed: bool = Field(default=False, alias="isCompleted")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    order_ids: list[int] = Field(default_factory=list, alias="orderIds")

    model_config = {"populate_by_name": True}
