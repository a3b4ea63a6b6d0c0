"""Respostas dos endpoints consumidos pelo modal de pagamento (JSON em camelCase)."""
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PaymentStatusResponse(CamelModel):
    payment_approved: bool
    profile_activated: bool
    subscription_created: bool
    ready: bool


class ManualActivationResponse(CamelModel):
    activated: bool
    outcome: str
    plan_type: Optional[str] = None
    subscription_status: Optional[str] = None
    expires_at: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool
    result: str
