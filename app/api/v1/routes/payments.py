from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user, get_current_user_optional
from app.db.session import get_db
from app.models.user import User
from app.schemas.payment import ManualActivationResponse, PaymentStatusResponse
from app.services.manual_activation_service import ManualActivationService
from app.services.payment_status_service import PaymentStatusService

router = APIRouter(tags=["payments"])


@router.get("/{payment_id}/status", response_model=PaymentStatusResponse)
def get_payment_status(
    payment_id: str,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    """
    Consulta usada pelo polling do modal de pagamento.
    Aceita id de PaymentIntent (PIX), checkout session ou assinatura.
    """
    return PaymentStatusService(db).get_status(payment_id, current_user)


@router.post("/{payment_id}/activate", response_model=ManualActivationResponse)
def activate_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Ativação manual quando o pagamento foi aprovado mas o plano ainda não refletiu."""
    return ManualActivationService(db).activate(payment_id, current_user)
