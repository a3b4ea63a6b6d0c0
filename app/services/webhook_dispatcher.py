"""Roteia um evento da Stripe já autenticado para o handler do seu tipo."""
import logging
from typing import Any, Dict

from pydantic import ValidationError

from app.schemas.stripe_events import (
    CheckoutSession,
    Invoice,
    PaymentIntent,
    StripeEvent,
    StripeSubscription,
)
from app.services.stripe_gateway import InvalidWebhookError
from app.services.stripe_webhook_service import HandlerResult, StripeWebhookService

logger = logging.getLogger(__name__)

# tipo do evento -> (método do StripeWebhookService, modelo do payload)
EVENT_HANDLERS = {
    "checkout.session.completed": ("handle_checkout_completed", CheckoutSession),
    "checkout.session.async_payment_succeeded": ("handle_checkout_completed", CheckoutSession),
    "invoice.paid": ("handle_invoice_paid", Invoice),
    "invoice.payment_failed": ("handle_invoice_payment_failed", Invoice),
    "customer.subscription.updated": ("handle_subscription_updated", StripeSubscription),
    "customer.subscription.deleted": ("handle_subscription_deleted", StripeSubscription),
    "payment_intent.requires_action": ("handle_pix_issued", PaymentIntent),
    "payment_intent.succeeded": ("handle_pix_succeeded", PaymentIntent),
    "payment_intent.payment_failed": ("handle_pix_failed", PaymentIntent),
    "payment_intent.canceled": ("handle_pix_expired", PaymentIntent),
}


def dispatch_event(event: Dict[str, Any], service: StripeWebhookService) -> str:
    try:
        parsed = StripeEvent.model_validate(event)
    except ValidationError as e:
        raise InvalidWebhookError(f"Evento malformado: {e}")

    entry = EVENT_HANDLERS.get(parsed.type)
    if entry is None:
        logger.info(f"Evento Stripe {parsed.type} ({parsed.id}) sem handler, ignorado")
        return HandlerResult.IGNORED

    method_name, payload_model = entry
    try:
        payload = payload_model.model_validate(parsed.data.object)
    except ValidationError as e:
        raise InvalidWebhookError(f"Payload de {parsed.type} malformado: {e}")

    logger.info(f"Processando evento Stripe {parsed.type} ({parsed.id})")
    result = getattr(service, method_name)(payload)
    logger.info(f"Evento Stripe {parsed.type} ({parsed.id}) -> {result}")
    return result
