"""
Fronteira com o SDK da Stripe: verificação de assinatura do webhook e leitura
do status de um PaymentIntent. Erros do SDK viram PaymentGatewayError.
"""
import json
import logging
from typing import Any, Dict

import stripe

from app.core.config import settings
from app.core.errors import PaymentGatewayError

logger = logging.getLogger(__name__)

# Status de PaymentIntent que significam dinheiro recebido
APPROVED_INTENT_STATUSES = {"succeeded"}


class InvalidWebhookError(ValueError):
    """Payload sem assinatura válida ou com corpo malformado."""


def construct_event(payload: bytes, sig_header: str) -> Dict[str, Any]:
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise InvalidWebhookError("STRIPE_WEBHOOK_SECRET não configurado")
    if not sig_header:
        raise InvalidWebhookError("Cabeçalho Stripe-Signature ausente")

    body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    try:
        stripe.WebhookSignature.verify_header(
            body,
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
            settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except stripe.SignatureVerificationError as e:
        raise InvalidWebhookError(f"Assinatura inválida: {e}")

    try:
        event = json.loads(body)
    except ValueError as e:
        raise InvalidWebhookError(f"JSON inválido: {e}")
    if not isinstance(event, dict) or not event.get("type"):
        raise InvalidWebhookError("Evento sem tipo")
    return event


class StripeGateway:
    def __init__(self, api_key: str = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        if not self.api_key:
            raise PaymentGatewayError("STRIPE_SECRET_KEY não configurado")
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"Erro ao consultar PaymentIntent {payment_intent_id}: {e}")
        return {
            "id": intent["id"],
            "status": intent["status"],
            "amount": intent["amount"],
            "currency": intent["currency"],
            "metadata": dict(intent["metadata"] or {}),
        }

    def is_payment_approved(self, payment_intent_id: str) -> bool:
        intent = self.retrieve_payment_intent(payment_intent_id)
        logger.info(f"Stripe PaymentIntent {payment_intent_id} status={intent['status']}")
        return intent["status"] in APPROVED_INTENT_STATUSES
