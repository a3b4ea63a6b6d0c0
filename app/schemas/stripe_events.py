"""
Payloads tipados dos eventos da Stripe consumidos pelos handlers.
Só os campos usados são declarados; o resto do objeto é ignorado.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator, model_validator

from app.utils.billing_periods import normalize_email


def _object_id(value: Any) -> Any:
    # Campos expansíveis chegam como id ("sub_...") ou como objeto completo
    if isinstance(value, dict):
        return value.get("id")
    return value


class StripeMetadata(BaseModel):
    user_id: Optional[int] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_guest_checkout: bool = False
    is_bundle: bool = False
    purchase_type: Optional[str] = None
    plan_type: Optional[str] = None
    promo_code: Optional[str] = None
    price_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        aliases = {
            "userId": "user_id",
            "isGuestCheckout": "is_guest_checkout",
            "isBundle": "is_bundle",
            "purchaseType": "purchase_type",
            "planType": "plan_type",
            "promoCode": "promo_code",
        }
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[aliases.get(key, key)] = value
        return cleaned

    @field_validator("email", mode="after")
    @classmethod
    def _normalize_email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value)


class CustomerDetails(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class CheckoutSession(BaseModel):
    id: str
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    subscription: Optional[str] = None
    customer: Optional[str] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    client_reference_id: Optional[str] = None
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_method_types: List[str] = []
    metadata: StripeMetadata = StripeMetadata()

    @field_validator("subscription", "customer", "payment_intent", mode="before")
    @classmethod
    def _expand(cls, value: Any) -> Any:
        return _object_id(value)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def buyer_email(self) -> Optional[str]:
        details_email = self.customer_details.email if self.customer_details else None
        return self.metadata.email or normalize_email(details_email) or normalize_email(self.customer_email)

    @property
    def buyer_phone(self) -> Optional[str]:
        details_phone = self.customer_details.phone if self.customer_details else None
        return self.metadata.phone or details_phone

    @property
    def buyer_user_id(self) -> Optional[int]:
        if self.metadata.user_id:
            return self.metadata.user_id
        reference = (self.client_reference_id or "").strip()
        if reference.isdigit():
            return int(reference)
        return None

    @property
    def payment_method(self) -> str:
        return "pix" if self.payment_method_types == ["pix"] else "card"


class Invoice(BaseModel):
    id: str
    subscription: Optional[str] = None
    customer: Optional[str] = None
    customer_email: Optional[str] = None
    amount_paid: int = 0
    currency: Optional[str] = None
    payment_intent: Optional[str] = None
    charge: Optional[str] = None
    billing_reason: Optional[str] = None
    paid_at: Optional[int] = None
    period_end: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # API nova: a assinatura mora em parent.subscription_details
        if not data.get("subscription"):
            parent = data.get("parent") or {}
            details = parent.get("subscription_details") or {}
            data["subscription"] = details.get("subscription")
        transitions = data.get("status_transitions") or {}
        data.setdefault("paid_at", transitions.get("paid_at"))
        lines = (data.get("lines") or {}).get("data") or []
        if lines and data.get("period_end") is None:
            data["period_end"] = (lines[0].get("period") or {}).get("end")
        return data

    @field_validator("subscription", "customer", "payment_intent", "charge", mode="before")
    @classmethod
    def _expand(cls, value: Any) -> Any:
        return _object_id(value)


class StripeSubscription(BaseModel):
    id: str
    status: Optional[str] = None
    customer: Optional[str] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    metadata: StripeMetadata = StripeMetadata()

    @model_validator(mode="before")
    @classmethod
    def _period_from_items(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("current_period_end"):
            return data
        items = (data.get("items") or {}).get("data") or []
        if items:
            data = dict(data)
            data["current_period_end"] = items[0].get("current_period_end")
        return data

    @field_validator("customer", mode="before")
    @classmethod
    def _expand(cls, value: Any) -> Any:
        return _object_id(value)


class PaymentIntent(BaseModel):
    id: str
    status: Optional[str] = None
    amount: int = 0
    amount_received: int = 0
    currency: Optional[str] = None
    payment_method_types: List[str] = []
    metadata: StripeMetadata = StripeMetadata()

    @property
    def is_pix(self) -> bool:
        return "pix" in self.payment_method_types


class StripeEventData(BaseModel):
    object: Dict[str, Any]


class StripeEvent(BaseModel):
    id: Optional[str] = None
    type: str
    data: StripeEventData
