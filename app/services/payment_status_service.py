"""
Consulta de status usada pelo polling do modal de pagamento.

Responde três perguntas independentes sobre um pagamento:
- paymentApproved: o ledger (ou a Stripe) confirma o pagamento;
- profileActivated: o perfil do dono reflete um plano premium ativo;
- subscriptionCreated: existe a linha de direito de acesso vinculada a um usuário.
`ready` só é verdadeiro quando as três são. Nada aqui escreve no banco.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import PaymentGatewayError, PaymentNotFoundError, PaymentOwnershipError
from app.models.status import LifetimeStatus, PixStatus, PlanType, ProfileStatus, SubscriptionStatus
from app.models.user import User
from app.repositories.lifetime_purchase_repository import LifetimePurchaseRepository
from app.repositories.payment_transaction_repository import PaymentTransactionRepository
from app.repositories.pending_guest_repository import PendingGuestSubscriptionRepository
from app.repositories.pix_payment_repository import PixPaymentRepository
from app.repositories.profile_repository import ProfileRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.services.stripe_gateway import StripeGateway
from app.services.subscription_service import pix_subscription_external_id

logger = logging.getLogger(__name__)


def build_status(payment_approved: bool, profile_activated: bool, subscription_created: bool) -> Dict[str, bool]:
    return {
        "payment_approved": payment_approved,
        "profile_activated": profile_activated,
        "subscription_created": subscription_created,
        "ready": payment_approved and profile_activated and subscription_created,
    }


class PaymentStatusService:
    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None):
        self.db = db
        self.gateway = gateway or StripeGateway()
        self.profile_repo = ProfileRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.transaction_repo = PaymentTransactionRepository(db)
        self.pix_repo = PixPaymentRepository(db)
        self.lifetime_repo = LifetimePurchaseRepository(db)
        self.pending_repo = PendingGuestSubscriptionRepository(db)

    def _check_owner(self, owner_id: Optional[int], requester: Optional[User]):
        if owner_id is not None and requester is not None and requester.id != owner_id:
            raise PaymentOwnershipError("Pagamento pertence a outro usuário")

    def _profile_activated(self, user_id: Optional[int]) -> bool:
        if user_id is None:
            return False
        profile = self.profile_repo.get_by_user_id(user_id)
        return bool(
            profile
            and profile.plan_type in PlanType.PREMIUM
            and profile.subscription_status == ProfileStatus.ACTIVE
        )

    def _processor_approved(self, payment_intent_id: str) -> bool:
        if not settings.VERIFY_WITH_PROCESSOR:
            return False
        try:
            return self.gateway.is_payment_approved(payment_intent_id)
        except PaymentGatewayError as e:
            logger.warning(f"Consulta à Stripe falhou para {payment_intent_id}, usando apenas o ledger: {e}")
            return False

    def get_status(self, payment_id: str, requester: Optional[User] = None) -> Dict[str, bool]:
        pix = self.pix_repo.get_by_intent_id(payment_id)
        if pix is not None:
            self._check_owner(pix.user_id, requester)
            approved = pix.status == PixStatus.PAID
            if pix.status == PixStatus.PENDING:
                approved = self._processor_approved(payment_id)
            subscription = self.subscription_repo.get_by_external_id(pix_subscription_external_id(payment_id))
            return build_status(
                approved,
                self._profile_activated(pix.user_id),
                bool(subscription and subscription.user_id is not None),
            )

        purchase = self.lifetime_repo.get_by_checkout_or_intent(payment_id, payment_id)
        if purchase is not None:
            self._check_owner(purchase.user_id, requester)
            return build_status(
                purchase.status == LifetimeStatus.COMPLETED,
                self._profile_activated(purchase.user_id),
                purchase.user_id is not None,
            )

        external_id = payment_id
        # payment intent de fatura de cartão
        transaction = self.transaction_repo.get_by_payment_id(payment_id)
        if transaction is not None and transaction.external_subscription_id:
            external_id = transaction.external_subscription_id

        subscription = (
            self.subscription_repo.get_by_external_id(external_id)
            or self.subscription_repo.get_by_checkout_session(payment_id)
        )
        if subscription is not None:
            self._check_owner(subscription.user_id, requester)
            approved = (
                subscription.status in SubscriptionStatus.LIVE
                or bool(self.transaction_repo.list_by_subscription(subscription))
            )
            return build_status(
                approved,
                self._profile_activated(subscription.user_id),
                subscription.user_id is not None,
            )

        pending = (
            self.pending_repo.get_by_external_id(external_id)
            or self.pending_repo.get_by_checkout_session(payment_id)
        )
        if pending is not None:
            return build_status(pending.status == SubscriptionStatus.ACTIVE, False, False)

        # PIX emitido fora deste serviço e webhook ainda não chegou
        if payment_id.startswith("pi_") and settings.VERIFY_WITH_PROCESSOR:
            return build_status(self._processor_approved(payment_id), False, False)

        raise PaymentNotFoundError(f"Pagamento {payment_id} não encontrado")
