import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.payment import WebhookAck
from app.services.stripe_gateway import InvalidWebhookError, construct_event
from app.services.stripe_webhook_service import StripeWebhookService
from app.services.webhook_dispatcher import dispatch_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/payments", response_model=WebhookAck)
async def payments_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Webhook da Stripe.
    - assinatura inválida/payload malformado: 400 (descartado, sem retry útil)
    - tipo de evento sem handler: 200 "ignored"
    - falha no handler: rollback e 500 para a Stripe reenviar
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = construct_event(payload, sig_header)
        result = dispatch_event(event, StripeWebhookService(db))
    except InvalidWebhookError as e:
        logger.warning(f"Webhook Stripe rejeitado: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        db.rollback()
        logger.error(f"Erro ao processar webhook Stripe: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Falha ao processar evento",
        )

    return {"received": True, "result": result}
