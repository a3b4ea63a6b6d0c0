"""
Handlers dos eventos da Stripe.

Formato comum de todos os handlers:
1. deduplicação pelo id externo do evento (assinatura, fatura, payment intent);
2. compra sem conta vai para a tabela pendente e para por aí;
3. inserção no ledger com o status traduzido para o vocabulário interno;
4. ativação só quando o pagamento está confirmado, sempre via ActivationService;
5. efeitos colaterais (email, bundle do bot) depois do commit, falhas só logadas.

Cada handler é uma unidade de trabalho: faz commit no final. Exceções sobem
para a rota, que faz rollback e responde 500 para a Stripe reenviar.
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ActivationError
from app.models.lifetime_purchase import LifetimePurchase
from app.models.payment_transaction import PaymentTransaction
from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.pix_payment import PixPayment
from app.models.status import (
    LifetimeStatus,
    PixPlan,
    PixStatus,
    SubscriptionStatus,
    TransactionStatus,
)
from app.models.subscription import Subscription
from app.models.user import User
from app.repositories.lifetime_purchase_repository import LifetimePurchaseRepository
from app.repositories.payment_transaction_repository import PaymentTransactionRepository
from app.repositories.pending_guest_repository import PendingGuestSubscriptionRepository
from app.repositories.pix_payment_repository import PixPaymentRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.schemas.stripe_events import (
    CheckoutSession,
    Invoice,
    PaymentIntent,
    StripeMetadata,
    StripeSubscription,
)
from app.services.activation_service import ActivationOutcome
from app.services.notification_service import PurchaseNotifier
from app.services.subscription_service import (
    LIFETIME_PLAN_NAME,
    SubscriptionService,
    build_activation_service,
)
from app.utils.billing_periods import from_timestamp, normalize_email, utcnow

logger = logging.getLogger(__name__)

# Status de assinatura da Stripe -> ação no reticulado interno
STRIPE_ACTIVE_STATUSES = {"active", "trialing"}
STRIPE_PAST_DUE_STATUSES = {"past_due", "unpaid"}
STRIPE_CANCELED_STATUSES = {"canceled", "incomplete_expired"}


class HandlerResult:
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    GUEST_PENDING = "guest_pending"
    IGNORED = "ignored"


class StripeWebhookService:
    def __init__(
        self,
        db: Session,
        notifier: Optional[PurchaseNotifier] = None,
    ):
        self.db = db
        self.activation = build_activation_service(db)
        self.user_repo = self.activation.user_repo
        self.subscription_repo: SubscriptionRepository = self.activation.subscription_repo
        self.transaction_repo = PaymentTransactionRepository(db)
        self.pending_repo = PendingGuestSubscriptionRepository(db)
        self.lifetime_repo = LifetimePurchaseRepository(db)
        self.pix_repo = PixPaymentRepository(db)
        self.subscription_service = SubscriptionService(self.subscription_repo)
        self.notifier = notifier or PurchaseNotifier()

    def _resolve_user(self, user_id: Optional[int]) -> Optional[User]:
        if not user_id:
            return None
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise ActivationError(f"Usuário {user_id} informado no evento não existe")
        return user

    # ------------------------------------------------------------------
    # checkout.session.completed / async_payment_succeeded
    # ------------------------------------------------------------------
    def handle_checkout_completed(self, session: CheckoutSession) -> str:
        logger.info(f"checkout.session {session.id} mode={session.mode} payment_status={session.payment_status}")
        if session.mode == "payment" and session.metadata.purchase_type == "lifetime":
            return self.handle_lifetime_completed(session)
        if session.mode != "subscription" or not session.subscription:
            logger.info(f"checkout.session {session.id} sem assinatura, ignorado")
            return HandlerResult.IGNORED

        existing = self.subscription_repo.get_by_external_id(session.subscription)
        if existing and existing.user_id is not None:
            user = self.user_repo.get_by_id(existing.user_id)
        else:
            user = None if session.metadata.is_guest_checkout else self._resolve_user(session.buyer_user_id)

        if user is None and existing is None:
            return self._record_guest_subscription(session)

        if existing:
            if existing.status != SubscriptionStatus.PENDING or not session.is_paid:
                logger.info(f"Assinatura {session.subscription} já registrada ({existing.status}), replay ignorado")
                return HandlerResult.DUPLICATE
            subscription = existing
        else:
            subscription = self.subscription_repo.create(Subscription(
                user_id=user.id,
                external_subscription_id=session.subscription,
                external_customer_id=session.customer,
                checkout_session_id=session.id,
                price_id=session.metadata.price_id,
                status=SubscriptionStatus.PENDING,
                payment_method=session.payment_method,
                amount_cents=session.amount_total,
                currency=(session.currency or "brl").upper(),
            ))

        outcome = None
        if session.is_paid and user is not None:
            outcome = self.activation.activate(user.id, subscription.id)
        self.db.commit()

        if outcome == ActivationOutcome.ACTIVATED:
            self.notifier.activation_completed(
                user,
                self.subscription_service.plan_name_for(subscription),
                is_bundle=session.metadata.is_bundle,
                phone=session.buyer_phone,
            )
        return outcome or HandlerResult.PROCESSED

    def _record_guest_subscription(self, session: CheckoutSession) -> str:
        email = session.buyer_email
        if not email:
            logger.error(f"checkout.session {session.id} guest sem email, impossível vincular depois")
            return HandlerResult.IGNORED

        status = SubscriptionStatus.ACTIVE if session.is_paid else SubscriptionStatus.PENDING
        pending = self.pending_repo.get_by_external_id(session.subscription)
        if pending:
            if status == SubscriptionStatus.ACTIVE and pending.status == SubscriptionStatus.PENDING:
                self.pending_repo.update_status(pending.id, status)
                self.db.commit()
            logger.info(f"Assinatura guest {session.subscription} já registrada, replay ignorado")
            return HandlerResult.DUPLICATE

        self.pending_repo.create(PendingGuestSubscription(
            email=email,
            phone=session.buyer_phone,
            external_subscription_id=session.subscription,
            external_customer_id=session.customer,
            checkout_session_id=session.id,
            price_id=session.metadata.price_id,
            status=status,
            amount_cents=session.amount_total,
            currency=(session.currency or "brl").upper(),
            is_bundle=session.metadata.is_bundle,
        ))
        self.db.commit()
        logger.info(f"Assinatura guest {session.subscription} aguardando vínculo para {email} (status={status})")
        return HandlerResult.GUEST_PENDING

    # ------------------------------------------------------------------
    # Compra vitalícia (checkout em modo payment)
    # ------------------------------------------------------------------
    def handle_lifetime_completed(self, session: CheckoutSession) -> str:
        paid = session.is_paid
        now = utcnow()
        existing = self.lifetime_repo.get_by_checkout_or_intent(session.id, session.payment_intent)
        if existing:
            if existing.status == LifetimeStatus.COMPLETED or not paid:
                logger.info(f"Compra vitalícia {session.id} já registrada, replay ignorado")
                return HandlerResult.DUPLICATE
            if not self.lifetime_repo.mark_completed(existing.id, now):
                return HandlerResult.DUPLICATE
            purchase = self.lifetime_repo.refresh(existing)
        else:
            user = None if session.metadata.is_guest_checkout else self._resolve_user(session.buyer_user_id)
            if user is None and not session.buyer_email:
                logger.error(f"Compra vitalícia {session.id} sem usuário nem email, ignorada")
                return HandlerResult.IGNORED
            purchase = self.lifetime_repo.create(LifetimePurchase(
                user_id=user.id if user else None,
                email=session.buyer_email,
                checkout_session_id=session.id,
                payment_intent_id=session.payment_intent,
                amount_cents=session.amount_total or 0,
                currency=(session.currency or "brl").upper(),
                payment_method=session.payment_method,
                status=LifetimeStatus.COMPLETED if paid else LifetimeStatus.PENDING,
                promo_code=session.metadata.promo_code,
                purchased_at=now if paid else None,
            ))

        if purchase.user_id is None:
            self.db.commit()
            logger.info(f"Compra vitalícia guest {session.id} aguardando vínculo para {purchase.email}")
            return HandlerResult.GUEST_PENDING

        outcome = None
        if purchase.status == LifetimeStatus.COMPLETED:
            outcome = self.activation.activate_lifetime(purchase.user_id)
        self.db.commit()

        if outcome == ActivationOutcome.ACTIVATED:
            self.notifier.activation_completed(self.user_repo.get_by_id(purchase.user_id), LIFETIME_PLAN_NAME)
        return outcome or HandlerResult.PROCESSED

    # ------------------------------------------------------------------
    # Faturas
    # ------------------------------------------------------------------
    def handle_invoice_paid(self, invoice: Invoice) -> str:
        logger.info(f"invoice.paid {invoice.id} subscription={invoice.subscription}")
        if not invoice.subscription:
            return HandlerResult.IGNORED
        if self.transaction_repo.get_by_invoice_id(invoice.id):
            logger.info(f"Fatura {invoice.id} já registrada, replay ignorado")
            return HandlerResult.DUPLICATE

        subscription = self.subscription_repo.get_by_external_id(invoice.subscription)
        if subscription is None:
            pending = self.pending_repo.get_by_external_id(invoice.subscription)
            if pending:
                # Entra no ledger sem dono; o vínculo guest encontra pelo id externo
                self._record_invoice(invoice)
                self.pending_repo.update_status(pending.id, SubscriptionStatus.ACTIVE)
                self.db.commit()
                logger.info(f"Fatura {invoice.id} paga para assinatura guest {invoice.subscription}")
                return HandlerResult.GUEST_PENDING
            # Fatura chegou antes do checkout.session.completed: a Stripe reenvia depois
            raise ActivationError(f"Assinatura {invoice.subscription} ainda não registrada")

        self._record_invoice(invoice, subscription)
        if self.subscription_repo.update_period(subscription.id, from_timestamp(invoice.period_end)):
            self.subscription_repo.refresh(subscription)

        outcome = None
        if subscription.user_id is not None:
            outcome = self.activation.activate(subscription.user_id, subscription.id)
        self.db.commit()

        if outcome == ActivationOutcome.ACTIVATED:
            self.notifier.activation_completed(
                self.user_repo.get_by_id(subscription.user_id),
                self.subscription_service.plan_name_for(subscription),
            )
        return outcome or HandlerResult.PROCESSED

    def _record_invoice(self, invoice: Invoice, subscription: Optional[Subscription] = None) -> PaymentTransaction:
        return self.transaction_repo.create(PaymentTransaction(
            subscription_id=subscription.id if subscription else None,
            user_id=subscription.user_id if subscription else None,
            external_subscription_id=invoice.subscription,
            external_invoice_id=invoice.id,
            external_payment_id=invoice.payment_intent,
            external_charge_id=invoice.charge,
            status=TransactionStatus.APPROVED,
            amount_cents=invoice.amount_paid,
            currency=(invoice.currency or "brl").upper(),
            payment_method=(subscription.payment_method if subscription else None) or "card",
            paid_at=from_timestamp(invoice.paid_at) or utcnow(),
        ))

    def handle_invoice_payment_failed(self, invoice: Invoice) -> str:
        logger.info(f"invoice.payment_failed {invoice.id} subscription={invoice.subscription}")
        if not invoice.subscription:
            return HandlerResult.IGNORED
        subscription = self.subscription_repo.get_by_external_id(invoice.subscription)
        if subscription is None:
            return self._update_guest_status(invoice.subscription, SubscriptionStatus.PAST_DUE)
        outcome = self.activation.mark_past_due(subscription.id)
        self.db.commit()
        return outcome

    # ------------------------------------------------------------------
    # Ciclo de vida da assinatura
    # ------------------------------------------------------------------
    def handle_subscription_updated(self, stripe_subscription: StripeSubscription) -> str:
        logger.info(f"customer.subscription.updated {stripe_subscription.id} status={stripe_subscription.status}")
        subscription = self.subscription_repo.get_by_external_id(stripe_subscription.id)
        if subscription is None:
            status = None
            if stripe_subscription.status in STRIPE_ACTIVE_STATUSES:
                status = SubscriptionStatus.ACTIVE
            elif stripe_subscription.status in STRIPE_PAST_DUE_STATUSES:
                status = SubscriptionStatus.PAST_DUE
            elif stripe_subscription.status in STRIPE_CANCELED_STATUSES:
                status = SubscriptionStatus.CANCELED
            if status is None:
                return HandlerResult.IGNORED
            return self._update_guest_status(stripe_subscription.id, status)

        if self.subscription_repo.update_period(subscription.id, from_timestamp(stripe_subscription.current_period_end)):
            self.subscription_repo.refresh(subscription)

        outcome = ActivationOutcome.UNCHANGED
        if stripe_subscription.status in STRIPE_ACTIVE_STATUSES and subscription.user_id is not None:
            outcome = self.activation.activate(subscription.user_id, subscription.id)
        elif stripe_subscription.status in STRIPE_PAST_DUE_STATUSES:
            outcome = self.activation.mark_past_due(subscription.id)
        elif stripe_subscription.status in STRIPE_CANCELED_STATUSES:
            outcome = self.activation.cancel(subscription.id)
        self.db.commit()

        if outcome == ActivationOutcome.ACTIVATED:
            self.notifier.activation_completed(
                self.user_repo.get_by_id(subscription.user_id),
                self.subscription_service.plan_name_for(subscription),
            )
        return outcome

    def _update_guest_status(self, external_subscription_id: str, status: str) -> str:
        """Espelha o status da Stripe na assinatura guest ainda não vinculada."""
        pending = self.pending_repo.get_by_external_id(external_subscription_id)
        if pending is None:
            logger.warning(f"Evento para assinatura desconhecida {external_subscription_id}, ignorado")
            return HandlerResult.IGNORED
        if not self.pending_repo.update_status(pending.id, status):
            logger.info(f"Assinatura guest {external_subscription_id} inerte ({pending.status}), status {status} ignorado")
            return HandlerResult.IGNORED
        self.db.commit()
        logger.info(f"Assinatura guest {external_subscription_id} -> {status}")
        return HandlerResult.GUEST_PENDING

    def handle_subscription_deleted(self, stripe_subscription: StripeSubscription) -> str:
        logger.info(f"customer.subscription.deleted {stripe_subscription.id}")
        subscription = self.subscription_repo.get_by_external_id(stripe_subscription.id)
        if subscription is None:
            pending = self.pending_repo.get_by_external_id(stripe_subscription.id)
            if pending:
                self.pending_repo.update_status(pending.id, SubscriptionStatus.CANCELED)
                self.db.commit()
                return HandlerResult.PROCESSED
            logger.warning(f"customer.subscription.deleted para assinatura desconhecida {stripe_subscription.id}")
            return HandlerResult.IGNORED
        outcome = self.activation.cancel(subscription.id)
        self.db.commit()
        return outcome

    # ------------------------------------------------------------------
    # PIX
    # ------------------------------------------------------------------
    def record_pix_success(
        self,
        payment_intent_id: str,
        metadata: StripeMetadata,
        amount_cents: int,
        currency: Optional[str],
    ) -> PixPayment:
        """
        Registra o PIX como pago (pending -> paid) ou cria a linha a partir dos
        metadados quando o QR code foi emitido fora deste serviço. Não faz commit.
        """
        now = utcnow()
        pix = self.pix_repo.get_by_intent_id(payment_intent_id)
        if pix is None:
            user_id = None
            if metadata.user_id and self.user_repo.get_by_id(metadata.user_id):
                user_id = metadata.user_id
            plan_type = metadata.plan_type if metadata.plan_type in PixPlan.ALL else PixPlan.MONTHLY
            return self.pix_repo.create(PixPayment(
                payment_intent_id=payment_intent_id,
                user_id=user_id,
                email=normalize_email(metadata.email),
                phone=metadata.phone,
                plan_type=plan_type,
                amount_cents=amount_cents,
                currency=(currency or "brl").upper(),
                status=PixStatus.PAID,
                is_bundle=metadata.is_bundle,
                paid_at=now,
            ))

        if pix.status == PixStatus.PENDING:
            self.pix_repo.mark_paid(payment_intent_id, now)
            self.pix_repo.refresh(pix)
        elif pix.status != PixStatus.PAID:
            logger.error(
                f"Pagamento confirmado para PIX {payment_intent_id} já encerrado como {pix.status}; "
                f"requer conciliação manual"
            )
        return pix

    def handle_pix_issued(self, intent: PaymentIntent) -> str:
        """QR code emitido: registra o PIX pendente com prazo de expiração."""
        logger.info(f"payment_intent.requires_action {intent.id} pix={intent.is_pix}")
        if not intent.is_pix or intent.metadata.purchase_type == "lifetime":
            return HandlerResult.IGNORED
        if self.pix_repo.get_by_intent_id(intent.id):
            return HandlerResult.DUPLICATE

        user_id = None
        if intent.metadata.user_id and self.user_repo.get_by_id(intent.metadata.user_id):
            user_id = intent.metadata.user_id
        if user_id is None and not intent.metadata.email:
            logger.error(f"PIX {intent.id} sem usuário nem email, impossível vincular depois")
            return HandlerResult.IGNORED

        now = utcnow()
        plan_type = intent.metadata.plan_type if intent.metadata.plan_type in PixPlan.ALL else PixPlan.MONTHLY
        self.pix_repo.create(PixPayment(
            payment_intent_id=intent.id,
            user_id=user_id,
            email=intent.metadata.email,
            phone=intent.metadata.phone,
            plan_type=plan_type,
            amount_cents=intent.amount,
            currency=(intent.currency or "brl").upper(),
            status=PixStatus.PENDING,
            is_bundle=intent.metadata.is_bundle,
            expires_at=now + timedelta(seconds=settings.PIX_EXPIRY_SECONDS),
        ))
        self.db.commit()
        return HandlerResult.PROCESSED

    def activate_pix(self, pix: PixPayment) -> Optional[str]:
        """Concede a assinatura do PIX pago ao dono. PIX guest espera o vínculo."""
        if pix.status != PixStatus.PAID or pix.user_id is None:
            return None
        subscription = self.subscription_service.grant_pix_subscription(pix.user_id, pix)
        return self.activation.activate(pix.user_id, subscription.id)

    def handle_pix_succeeded(self, intent: PaymentIntent) -> str:
        logger.info(f"payment_intent.succeeded {intent.id} pix={intent.is_pix}")
        if not intent.is_pix or intent.metadata.purchase_type == "lifetime":
            return HandlerResult.IGNORED

        pix = self.record_pix_success(
            intent.id, intent.metadata, intent.amount_received or intent.amount, intent.currency
        )
        if pix.status != PixStatus.PAID:
            self.db.commit()
            return HandlerResult.IGNORED
        if pix.user_id is None:
            self.db.commit()
            logger.info(f"PIX guest {intent.id} pago, aguardando vínculo para {pix.email}")
            return HandlerResult.GUEST_PENDING

        outcome = self.activate_pix(pix)
        self.db.commit()

        if outcome == ActivationOutcome.ACTIVATED:
            self.notifier.activation_completed(
                self.user_repo.get_by_id(pix.user_id),
                settings.get_pix_plan_name(pix.plan_type) or pix.plan_type,
                is_bundle=bool(pix.is_bundle),
                phone=pix.phone,
            )
        return outcome

    def handle_pix_failed(self, intent: PaymentIntent) -> str:
        return self._close_pix(intent, PixStatus.FAILED)

    def handle_pix_expired(self, intent: PaymentIntent) -> str:
        return self._close_pix(intent, PixStatus.EXPIRED)

    def _close_pix(self, intent: PaymentIntent, status: str) -> str:
        logger.info(f"PIX {intent.id} -> {status}")
        if not intent.is_pix:
            return HandlerResult.IGNORED
        if not self.pix_repo.mark_terminal(intent.id, status):
            logger.info(f"PIX {intent.id} não está pendente, evento {status} ignorado")
            return HandlerResult.DUPLICATE
        self.db.commit()
        return HandlerResult.PROCESSED
