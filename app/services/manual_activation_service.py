"""
Ativação manual: o cliente viu "pagamento aprovado, plano ainda não ativo" e
pede para ativar agora. Reaproveita exatamente os caminhos do webhook (registro
do PIX pago, concessão da assinatura, ActivationService), então um webhook que
chegue em paralelo converge para o mesmo estado.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    ActivationError,
    PaymentNotApprovedError,
    PaymentNotFoundError,
    PaymentOwnershipError,
)
from app.models.status import LifetimeStatus, PixStatus, SubscriptionStatus
from app.models.user import User
from app.schemas.stripe_events import PaymentIntent
from app.services.activation_service import ActivationOutcome
from app.services.guest_link_service import GuestLinkService
from app.services.notification_service import PurchaseNotifier
from app.services.stripe_gateway import APPROVED_INTENT_STATUSES, StripeGateway
from app.services.stripe_webhook_service import StripeWebhookService
from app.services.subscription_service import LIFETIME_PLAN_NAME
from app.utils.billing_periods import as_utc, utcnow

logger = logging.getLogger(__name__)


class ManualActivationService:
    def __init__(
        self,
        db: Session,
        gateway: Optional[StripeGateway] = None,
        notifier: Optional[PurchaseNotifier] = None,
    ):
        self.db = db
        self.gateway = gateway or StripeGateway()
        self.notifier = notifier or PurchaseNotifier()
        # O fluxo manual usa os mesmos handlers do webhook; efeitos só depois do commit daqui
        self.webhooks = StripeWebhookService(db, notifier=self.notifier)
        self.linker = GuestLinkService(db, notifier=self.notifier)
        self.activation = self.webhooks.activation

    def activate(self, payment_id: str, user: User) -> Dict[str, Any]:
        """
        Ativa o plano do usuário autenticado a partir do pagamento informado.

        Raises:
            PaymentNotFoundError: pagamento desconhecido.
            PaymentOwnershipError: pagamento de outro usuário.
            PaymentNotApprovedError: a Stripe ainda não confirmou o pagamento.
            ActivationError: ledger inconsistente (assinatura ausente).
        """
        logger.info(f"Ativação manual solicitada: payment_id={payment_id} user_id={user.id}")
        try:
            outcome, plan_name, is_bundle, phone = self._resolve_and_activate(payment_id, user)
        except Exception:
            self.db.rollback()
            raise

        if outcome == ActivationOutcome.SUPERSEDED:
            self.db.rollback()
            raise PaymentNotApprovedError("Assinatura cancelada; inicie um novo pagamento")
        self.db.commit()

        if outcome == ActivationOutcome.ACTIVATED:
            self.notifier.activation_completed(user, plan_name, is_bundle, phone)

        profile = self.activation.profile_repo.get_by_user_id(user.id)
        expires_at = as_utc(profile.subscription_expires_at) if profile else None
        logger.info(f"Ativação manual concluída: payment_id={payment_id} user_id={user.id} outcome={outcome}")
        return {
            "activated": True,
            "outcome": outcome,
            "plan_type": profile.plan_type if profile else None,
            "subscription_status": profile.subscription_status if profile else None,
            "expires_at": expires_at.isoformat() if expires_at else None,
        }

    def _resolve_and_activate(self, payment_id: str, user: User):
        if self.webhooks.pix_repo.get_by_intent_id(payment_id) is not None:
            result = self._activate_pix(payment_id, user)
        else:
            result = self._activate_other(payment_id, user)
            if result is None and payment_id.startswith("pi_"):
                # PIX que ainda não passou pelo webhook: a Stripe decide
                result = self._activate_pix(payment_id, user)
        if result is None:
            raise PaymentNotFoundError(f"Pagamento {payment_id} não encontrado")
        return result

    def _activate_pix(self, payment_intent_id: str, user: User):
        pix = self.webhooks.pix_repo.get_by_intent_id(payment_intent_id)
        if pix is not None and pix.user_id is not None and pix.user_id != user.id:
            raise PaymentOwnershipError("Pagamento pertence a outro usuário")
        if pix is not None and pix.status in (PixStatus.FAILED, PixStatus.EXPIRED):
            raise PaymentNotApprovedError(f"Pagamento PIX {pix.status}; gere um novo código")

        if pix is None or pix.status == PixStatus.PENDING:
            intent = self.gateway.retrieve_payment_intent(payment_intent_id)
            if intent["status"] not in APPROVED_INTENT_STATUSES:
                raise PaymentNotApprovedError("Pagamento ainda não confirmado pela Stripe")
            parsed = PaymentIntent.model_validate(intent)
            if pix is None and parsed.metadata.user_id not in (None, user.id):
                raise PaymentOwnershipError("Pagamento pertence a outro usuário")
            pix = self.webhooks.record_pix_success(
                payment_intent_id, parsed.metadata, parsed.amount, parsed.currency
            )
        if pix.status != PixStatus.PAID:
            raise PaymentNotApprovedError(f"Pagamento PIX {pix.status}")

        if pix.user_id is None:
            self.webhooks.pix_repo.bind_user(payment_intent_id, user.id, utcnow())
            self.webhooks.pix_repo.refresh(pix)
            if pix.user_id != user.id:
                raise PaymentOwnershipError("Pagamento vinculado a outro usuário")

        outcome = self.webhooks.activate_pix(pix)
        plan_name = settings.get_pix_plan_name(pix.plan_type) or pix.plan_type
        return outcome, plan_name, bool(pix.is_bundle), pix.phone

    def _activate_other(self, payment_id: str, user: User):
        purchase = self.webhooks.lifetime_repo.get_by_checkout_or_intent(payment_id, payment_id)
        if purchase is not None:
            if purchase.user_id is not None and purchase.user_id != user.id:
                raise PaymentOwnershipError("Pagamento pertence a outro usuário")
            if purchase.status != LifetimeStatus.COMPLETED:
                raise PaymentNotApprovedError("Compra vitalícia ainda não confirmada")
            if purchase.user_id is None and not self.webhooks.lifetime_repo.claim(purchase.id, user.id, utcnow()):
                raise PaymentOwnershipError("Pagamento vinculado a outro usuário")
            return self.activation.activate_lifetime(user.id), LIFETIME_PLAN_NAME, False, None

        subscription_repo = self.webhooks.subscription_repo
        subscription = (
            subscription_repo.get_by_external_id(payment_id)
            or subscription_repo.get_by_checkout_session(payment_id)
        )
        if subscription is not None:
            if subscription.user_id is not None and subscription.user_id != user.id:
                raise PaymentOwnershipError("Pagamento pertence a outro usuário")
            paid = (
                subscription.status in SubscriptionStatus.LIVE
                or bool(self.webhooks.transaction_repo.list_by_subscription(subscription))
            )
            if subscription.status == SubscriptionStatus.CANCELED:
                raise PaymentNotApprovedError("Assinatura cancelada; inicie um novo pagamento")
            if not paid:
                raise PaymentNotApprovedError("Pagamento da assinatura ainda não confirmado")
            if subscription.user_id is None:
                subscription_repo.bind_user(subscription.id, user.id)
                subscription_repo.refresh(subscription)
            plan_name = self.webhooks.subscription_service.plan_name_for(subscription)
            return self.activation.activate(user.id, subscription.id), plan_name, False, None

        pending = (
            self.webhooks.pending_repo.get_by_external_id(payment_id)
            or self.webhooks.pending_repo.get_by_checkout_session(payment_id)
        )
        if pending is not None:
            if pending.linked_user_id is not None and pending.linked_user_id != user.id:
                raise PaymentOwnershipError("Pagamento pertence a outro usuário")
            if pending.status != SubscriptionStatus.ACTIVE:
                raise PaymentNotApprovedError("Pagamento da assinatura ainda não confirmado")
            linked = self.linker.link_pending_subscription(pending, user)
            if linked is None:
                raise ActivationError(f"Assinatura guest {payment_id} já vinculada")
            outcome, subscription = linked
            plan_name = self.webhooks.subscription_service.plan_name_for(subscription)
            return outcome, plan_name, bool(pending.is_bundle), pending.phone

        return None
