from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.repositories.subscription_repository import SubscriptionRepository
from app.services.subscription_service import SubscriptionService
from app.schemas.subscription import PendingGuestPaymentsResponse, SubscriptionStatusResponse

router = APIRouter(tags=["subscription"])


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Retorna o status da assinatura do usuário atual."""
    subscription_service = SubscriptionService(SubscriptionRepository(db))
    return subscription_service.get_subscription_status(current_user.id)


@router.get("/pending-guest", response_model=PendingGuestPaymentsResponse)
def list_pending_guest_payments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Lista compras feitas sem conta com o email do usuário e ainda não vinculadas.
    Normalmente vazia: o vínculo acontece no cadastro/login.
    """
    subscription_service = SubscriptionService(SubscriptionRepository(db))
    return {
        "email": current_user.email,
        "payments": subscription_service.list_pending_guest_payments(current_user.email),
    }
