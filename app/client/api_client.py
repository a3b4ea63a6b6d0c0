"""Cliente HTTP dos endpoints de verificação e ativação manual."""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

NOT_FOUND_STATUS = {
    "paymentApproved": False,
    "profileActivated": False,
    "subscriptionCreated": False,
    "ready": False,
}


class ApiClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class BillingApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    @staticmethod
    def _error_from(response: requests.Response) -> ApiClientError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") or response.text or f"HTTP {response.status_code}"
        return ApiClientError(str(detail), response.status_code, body.get("code"))

    def get_payment_status(self, payment_id: str) -> Dict[str, Any]:
        """
        Consulta GET /payments/{id}/status.
        404 é tratado como "nada aconteceu ainda" (webhook não chegou).
        """
        response = self.session.get(
            self._url(f"/payments/{payment_id}/status"),
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code == 404:
            return dict(NOT_FOUND_STATUS)
        if not response.ok:
            raise self._error_from(response)
        return response.json()

    def activate_payment(self, payment_id: str) -> Dict[str, Any]:
        response = self.session.post(
            self._url(f"/payments/{payment_id}/activate"),
            headers=self._headers(),
            timeout=self.timeout,
        )
        if not response.ok:
            error = self._error_from(response)
            logger.warning(
                f"Ativação manual de {payment_id} falhou: HTTP {error.status_code} ({error.code}) {error.message}"
            )
            raise error
        return response.json()
