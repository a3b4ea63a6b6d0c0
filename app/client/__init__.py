from app.client.api_client import ApiClientError, BillingApiClient
from app.client.reconciliation import (
    ModalState,
    PaymentModalSession,
    PaymentReconciliationMachine,
    StatusSnapshot,
)

__all__ = [
    "ApiClientError",
    "BillingApiClient",
    "ModalState",
    "PaymentModalSession",
    "PaymentReconciliationMachine",
    "StatusSnapshot",
]
