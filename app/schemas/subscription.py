from pydantic import BaseModel
from typing import List, Optional


class CurrentSubscription(BaseModel):
    id: int
    external_subscription_id: str
    status: str
    payment_method: Optional[str] = None
    current_period_end: Optional[str] = None


class SubscriptionStatusResponse(BaseModel):
    """Estado do plano do usuário autenticado."""
    plan_type: str
    subscription_status: str
    expires_at: Optional[str] = None
    subscription: Optional[CurrentSubscription] = None


class PendingGuestPayment(BaseModel):
    """Compra feita sem conta que ainda não foi vinculada."""
    kind: str  # "subscription", "pix", "lifetime"
    reference: str
    status: str
    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    created_at: Optional[str] = None


class PendingGuestPaymentsResponse(BaseModel):
    email: str
    payments: List[PendingGuestPayment]
