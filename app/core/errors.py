import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)


class BillingError(RuntimeError):
    """Erro de domínio do fluxo de cobrança/ativação."""

    status_code = 500
    code = "billing_error"


class ActivationError(BillingError):
    """Usuário, perfil ou linha do ledger alvo da ativação não existe."""

    code = "activation_failed"


class PaymentNotFoundError(BillingError):
    status_code = 404
    code = "payment_not_found"


class PaymentOwnershipError(BillingError):
    status_code = 403
    code = "payment_forbidden"


class PaymentNotApprovedError(BillingError):
    status_code = 409
    code = "payment_not_approved"


class PaymentGatewayError(BillingError):
    """Falha ao falar com a Stripe (rede, credencial, erro da API)."""

    status_code = 502
    code = "gateway_unavailable"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(BillingError)
    async def billing_exception_handler(request: Request, exc: BillingError):
        content = {"detail": str(exc) or exc.code, "code": exc.code}
        if exc.status_code >= 500:
            logger.error(f"Falha de ativação na rota {request.url}: {exc}")
            content["support"] = settings.SUPPORT_EMAIL
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Erro não tratado na rota {request.url}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Erro interno do servidor"},
        )
