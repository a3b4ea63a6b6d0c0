"""
Datas de período de assinatura e normalização de identidades (email/telefone).
Usado pelos handlers de webhook, pelo vínculo de compras guest e pela ativação manual
para que os três caminhos calculem exatamente a mesma janela de acesso.
"""
import calendar
from datetime import datetime, timezone
from typing import Optional, Tuple

from app.models.status import PixPlan


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Converte epoch (segundos, formato da Stripe) em datetime UTC."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Soma meses de calendário, limitando o dia ao último dia do mês de destino."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def calculate_subscription_window(plan_type: str, paid_at: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Janela de acesso de um pagamento avulso (PIX).
    - monthly -> +1 mês a partir do pagamento
    - annual  -> +1 ano a partir do pagamento
    """
    if plan_type not in PixPlan.ALL:
        raise ValueError(f"Tipo de plano inválido: {plan_type}")
    start = paid_at or utcnow()
    months = 1 if plan_type == PixPlan.MONTHLY else 12
    return start, add_months(start, months)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not isinstance(email, str):
        return None
    normalized = email.strip().lower()
    return normalized or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Mantém apenas dígitos e garante o DDI 55 (números brasileiros)."""
    if not phone:
        return None
    digits = "".join(ch for ch in str(phone) if ch.isdigit())
    if not digits:
        return None
    if not digits.startswith("55"):
        digits = "55" + digits
    return digits


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devolve datetimes sem fuso; tratamos todos como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
