"""
Única porta de escrita do plano do usuário (tabela profiles).

Todas as transições são compare-and-set (UPDATE ... WHERE <pré-condição>), nunca
ler-e-depois-escrever. O reticulado de status da assinatura é:

    pending -> active <-> past_due -> canceled (terminal)

Chamar activate/cancel/mark_past_due repetidamente com o mesmo id é seguro: a
segunda chamada não encontra linha para alterar e vira no-op. Este serviço não
faz commit; quem abre a unidade de trabalho (handler, vínculo guest, ativação
manual) decide quando confirmar.
"""
import logging

from app.core.errors import ActivationError
from app.models.status import SubscriptionStatus
from app.repositories.profile_repository import ProfileRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.repositories.user_repository import UserRepository
from app.utils.billing_periods import utcnow

logger = logging.getLogger(__name__)


class ActivationOutcome:
    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already_active"
    # A assinatura já foi cancelada; cancelamento vence ativação
    SUPERSEDED = "superseded"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNCHANGED = "unchanged"


class ActivationService:
    def __init__(
        self,
        user_repo: UserRepository,
        profile_repo: ProfileRepository,
        subscription_repo: SubscriptionRepository,
    ):
        self.user_repo = user_repo
        self.profile_repo = profile_repo
        self.subscription_repo = subscription_repo

    def _ensure_profile(self, user_id: int):
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise ActivationError(f"Usuário {user_id} não encontrado")
        return self.profile_repo.get_or_create(user.id, user.email)

    def _load_subscription(self, subscription_id: int):
        subscription = self.subscription_repo.get_by_id(subscription_id)
        if not subscription:
            raise ActivationError(f"Assinatura {subscription_id} não encontrada")
        return subscription

    def activate(self, user_id: int, subscription_id: int) -> str:
        """
        Concede o plano pro ao usuário a partir da assinatura informada.

        Returns:
            ACTIVATED quando esta chamada alterou o perfil, ALREADY_ACTIVE quando
            nada precisava mudar (replay, plano protegido ou outra assinatura ativa)
            e SUPERSEDED quando a assinatura já estava cancelada.

        Raises:
            ActivationError: usuário ou assinatura inexistente, ou assinatura de outro usuário.
        """
        subscription = self._load_subscription(subscription_id)
        if subscription.user_id != user_id:
            raise ActivationError(
                f"Assinatura {subscription_id} não pertence ao usuário {user_id}"
            )
        self._ensure_profile(user_id)

        if subscription.status == SubscriptionStatus.CANCELED:
            logger.info(f"Ativação ignorada: assinatura {subscription_id} já cancelada")
            return ActivationOutcome.SUPERSEDED

        promoted = self.subscription_repo.promote_to_active(
            subscription_id, user_id, period_end=subscription.current_period_end
        )
        changed = self.profile_repo.mark_active(
            user_id, subscription_id, subscription.current_period_end
        )
        self.subscription_repo.db.flush()
        self.subscription_repo.refresh(subscription)

        if changed:
            logger.info(
                f"Plano ativado: user_id={user_id} subscription_id={subscription_id} promoted={bool(promoted)}"
            )
            return ActivationOutcome.ACTIVATED
        if subscription.status == SubscriptionStatus.CANCELED:
            return ActivationOutcome.SUPERSEDED
        if subscription.status == SubscriptionStatus.ACTIVE:
            self.profile_repo.sync_expiry(user_id, subscription_id, subscription.current_period_end)
            logger.info(f"Ativação sem efeito (já ativo): user_id={user_id} subscription_id={subscription_id}")
        else:
            logger.warning(
                f"Assinatura {subscription_id} não promovida: usuário {user_id} já possui outra assinatura ativa"
            )
        return ActivationOutcome.ALREADY_ACTIVE

    def cancel(self, subscription_id: int) -> str:
        subscription = self._load_subscription(subscription_id)
        changed = self.subscription_repo.mark_canceled(subscription_id, utcnow())
        profile_changed = 0
        if subscription.user_id is not None:
            profile_changed = self.profile_repo.mark_canceled(subscription.user_id, subscription_id)
        self.subscription_repo.db.flush()
        if changed or profile_changed:
            logger.info(
                f"Assinatura cancelada: subscription_id={subscription_id} user_id={subscription.user_id} "
                f"profile_changed={bool(profile_changed)}"
            )
            return ActivationOutcome.CANCELED
        return ActivationOutcome.UNCHANGED

    def mark_past_due(self, subscription_id: int) -> str:
        subscription = self._load_subscription(subscription_id)
        changed = self.subscription_repo.mark_past_due(subscription_id)
        if changed and subscription.user_id is not None:
            self.profile_repo.mark_past_due(subscription.user_id, subscription_id)
        self.subscription_repo.db.flush()
        if changed:
            logger.info(f"Assinatura em atraso: subscription_id={subscription_id}")
            return ActivationOutcome.PAST_DUE
        return ActivationOutcome.UNCHANGED

    def activate_lifetime(self, user_id: int) -> str:
        self._ensure_profile(user_id)
        changed = self.profile_repo.mark_lifetime(user_id)
        self.profile_repo.db.flush()
        if changed:
            logger.info(f"Plano lifetime concedido: user_id={user_id}")
            return ActivationOutcome.ACTIVATED
        return ActivationOutcome.ALREADY_ACTIVE
