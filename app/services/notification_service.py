"""
Efeitos colaterais de uma ativação: email de compra concluída (via Celery) e
liberação do bot de WhatsApp vendido em bundle. Nenhuma falha aqui desfaz a
ativação principal; tudo é apenas logado.
"""
import logging
from typing import Callable, Optional

from app.models.user import User
from app.services import companion_service

logger = logging.getLogger(__name__)


class PurchaseNotifier:
    def __init__(self, companion_activate: Optional[Callable] = None):
        self.companion_activate = companion_activate or companion_service.activate_entitlement

    def purchase_completed(self, user_email: str, user_name: Optional[str], plan_name: str) -> None:
        from app.tasks.billing_tasks import send_purchase_completed_email

        try:
            send_purchase_completed_email.delay(user_email, user_name, plan_name)
            logger.info(f"Email de compra concluída enfileirado para {user_email} ({plan_name})")
        except Exception as e:
            logger.error(f"Falha ao enfileirar email de compra para {user_email}: {e}", exc_info=True)

    def activation_completed(
        self,
        user: User,
        plan_name: str,
        is_bundle: bool = False,
        phone: Optional[str] = None,
    ) -> None:
        """Chamado depois do commit e só quando a ativação alterou o perfil."""
        self.purchase_completed(user.email, user.name, plan_name)
        if not is_bundle:
            return
        try:
            self.companion_activate(user.email, phone or user.phone)
        except Exception as e:
            # Acesso principal já está ativo; o bundle fica para reprocessamento manual
            logger.error(
                f"Falha ao liberar bundle do bot para user_id={user.id} ({user.email}): {e}",
                exc_info=True,
            )
