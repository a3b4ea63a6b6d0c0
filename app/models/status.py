"""Vocabulário interno de status do ledger e do perfil."""


class PlanType:
    FREE = "free"
    PRO = "pro"
    ADMIN = "admin"
    LIFETIME = "lifetime"

    PREMIUM = (PRO, ADMIN, LIFETIME)
    # Planos que uma assinatura recorrente nunca sobrescreve
    PROTECTED = (ADMIN, LIFETIME)


class ProfileStatus:
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class SubscriptionStatus:
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"

    LIVE = (ACTIVE, PAST_DUE)


class TransactionStatus:
    APPROVED = "approved"


class PixStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"

    TERMINAL = (PAID, FAILED, EXPIRED)


class LifetimeStatus:
    PENDING = "pending"
    COMPLETED = "completed"


class PixPlan:
    MONTHLY = "monthly"
    ANNUAL = "annual"

    ALL = (MONTHLY, ANNUAL)
