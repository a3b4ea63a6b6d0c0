"""
Fixtures compartilhadas: SQLite em memória (uma conexão via StaticPool),
fábricas de usuário/assinatura e notifier mockado.
As variáveis de ambiente precisam existir antes de importar app.*.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("VERIFY_WITH_PROCESSOR", "false")

from unittest.mock import Mock

import pytest

import app.models  # noqa: F401
from app.core.security import get_password_hash
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models.status import SubscriptionStatus
from app.models.subscription import Subscription
from app.models.user import User
from app.repositories.profile_repository import ProfileRepository
from app.services.notification_service import PurchaseNotifier

TEST_PASSWORD = "senha-forte-123"
# Hash calculado uma vez; bcrypt é lento de propósito
_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return Mock(spec=PurchaseNotifier)


@pytest.fixture
def make_user(db):
    def _make(email="buyer@example.com", name="Buyer", phone=None):
        user = User(
            name=name,
            email=email.strip().lower(),
            phone=phone,
            hashed_password=_PASSWORD_HASH,
            is_active=True,
        )
        db.add(user)
        db.flush()
        ProfileRepository(db).create(user.id, user.email)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_subscription(db):
    def _make(user_id, external_id="sub_test_1", status=SubscriptionStatus.PENDING, **fields):
        subscription = Subscription(
            user_id=user_id,
            external_subscription_id=external_id,
            status=status,
            payment_method=fields.pop("payment_method", "card"),
            amount_cents=fields.pop("amount_cents", 2990),
            currency="BRL",
            **fields,
        )
        db.add(subscription)
        db.commit()
        return subscription
    return _make
