"""Cliente HTTP do produto companheiro (bot de WhatsApp) vendido em bundle."""
import logging
from typing import Optional

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


class CompanionError(RuntimeError):
    pass


def activate_entitlement(email: str, phone: Optional[str], days: Optional[int] = None) -> None:
    """Libera o acesso ao bot por `days` dias. Levanta CompanionError em qualquer falha."""
    if not settings.COMPANION_API_URL or not settings.COMPANION_API_SECRET:
        raise CompanionError("Companion API not configured")

    url = f"{settings.COMPANION_API_URL.rstrip('/')}/entitlements"
    payload = {
        "email": email,
        "phone": phone,
        "days": days or settings.COMPANION_BUNDLE_DAYS,
    }
    headers = {"Authorization": f"Bearer {settings.COMPANION_API_SECRET}"}
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=10)
    except requests.RequestException as e:
        raise CompanionError(f"Companion request failed: {str(e)}")

    if resp.status_code >= 400:
        raise CompanionError(f"Companion entitlement error: {resp.status_code}")
    logger.info(f"Bundle do bot liberado para {email}")
