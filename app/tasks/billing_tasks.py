"""
Tarefas de fundo do fluxo de cobrança: email de compra concluída e
expiração periódica de PIX pendentes e de assinaturas PIX vencidas.
"""
import logging

from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_purchase_completed_email(self, user_email: str, user_name: str, plan_name: str):
    from app.services.email_service import EmailService

    sent = EmailService().send_purchase_completed_email(user_email, user_name, plan_name)
    if not sent:
        logger.error(f"send_purchase_completed_email: falha ao enviar para {user_email}")
    return sent


@celery_app.task
def expire_stale_pix_payments():
    from app.db.session import SessionLocal
    from app.repositories.pix_payment_repository import PixPaymentRepository
    from app.utils.billing_periods import utcnow

    db = SessionLocal()
    try:
        expired = PixPaymentRepository(db).expire_stale(utcnow())
        db.commit()
        if expired:
            logger.info(f"expire_stale_pix_payments: {expired} PIX expirados")
        return expired
    except Exception:
        db.rollback()
        logger.error("expire_stale_pix_payments falhou", exc_info=True)
        raise
    finally:
        db.close()


@celery_app.task
def expire_lapsed_pix_subscriptions():
    from app.db.session import SessionLocal
    from app.services.activation_service import ActivationOutcome
    from app.services.subscription_service import build_activation_service
    from app.utils.billing_periods import utcnow

    db = SessionLocal()
    try:
        activation = build_activation_service(db)
        lapsed = activation.subscription_repo.list_lapsed_pix(utcnow())
        canceled = 0
        for subscription in lapsed:
            if activation.cancel(subscription.id) == ActivationOutcome.CANCELED:
                canceled += 1
        db.commit()
        logger.info(f"expire_lapsed_pix_subscriptions: {canceled}/{len(lapsed)} assinaturas PIX encerradas")
        return canceled
    except Exception:
        db.rollback()
        logger.error("expire_lapsed_pix_subscriptions falhou", exc_info=True)
        raise
    finally:
        db.close()
