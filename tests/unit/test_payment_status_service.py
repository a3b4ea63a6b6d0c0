from unittest.mock import Mock

import pytest

from app.core.config import settings
from app.core.errors import PaymentGatewayError, PaymentNotFoundError, PaymentOwnershipError
from app.models.payment_transaction import PaymentTransaction
from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.pix_payment import PixPayment
from app.models.status import PixStatus, SubscriptionStatus, TransactionStatus
from app.services.payment_status_service import PaymentStatusService
from app.services.stripe_gateway import StripeGateway
from app.services.stripe_webhook_service import StripeWebhookService
from app.schemas.stripe_events import PaymentIntent


@pytest.fixture
def gateway():
    return Mock(spec=StripeGateway)


def _add_pix(db, intent_id="pi_status", user_id=None, status=PixStatus.PENDING):
    db.add(PixPayment(payment_intent_id=intent_id, user_id=user_id, plan_type="monthly", amount_cents=2990, status=status))
    db.commit()


def test_pending_pix_is_not_approved(db, gateway, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id)

    status = PaymentStatusService(db, gateway=gateway).get_status("pi_status", user)

    assert status == {
        "payment_approved": False,
        "profile_activated": False,
        "subscription_created": False,
        "ready": False,
    }
    gateway.is_payment_approved.assert_not_called()


def test_paid_and_activated_pix_is_ready(db, gateway, notifier, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id)
    intent = PaymentIntent.model_validate({"id": "pi_status", "amount": 2990, "payment_method_types": ["pix"]})
    StripeWebhookService(db, notifier=notifier).handle_pix_succeeded(intent)

    status = PaymentStatusService(db, gateway=gateway).get_status("pi_status", user)

    assert status["ready"] is True


def test_approved_but_not_activated_is_distinguishable(db, gateway, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id, status=PixStatus.PAID)

    status = PaymentStatusService(db, gateway=gateway).get_status("pi_status", user)

    assert status["payment_approved"] is True
    assert status["profile_activated"] is False
    assert status["ready"] is False


def test_processor_cross_check_for_pending_pix(db, gateway, make_user, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_WITH_PROCESSOR", True)
    user = make_user()
    _add_pix(db, user_id=user.id)
    gateway.is_payment_approved.return_value = True

    status = PaymentStatusService(db, gateway=gateway).get_status("pi_status", user)

    assert status["payment_approved"] is True
    gateway.is_payment_approved.assert_called_once_with("pi_status")


def test_gateway_failure_falls_back_to_ledger(db, gateway, make_user, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_WITH_PROCESSOR", True)
    user = make_user()
    _add_pix(db, user_id=user.id)
    gateway.is_payment_approved.side_effect = PaymentGatewayError("timeout")

    status = PaymentStatusService(db, gateway=gateway).get_status("pi_status", user)

    assert status["payment_approved"] is False


def test_other_users_payment_is_forbidden(db, gateway, make_user):
    owner = make_user()
    intruder = make_user(email="intruder@example.com")
    _add_pix(db, user_id=owner.id)

    with pytest.raises(PaymentOwnershipError):
        PaymentStatusService(db, gateway=gateway).get_status("pi_status", intruder)


def test_subscription_lookup_by_checkout_session(db, gateway, make_user, make_subscription):
    user = make_user()
    make_subscription(user.id, external_id="sub_cs", status=SubscriptionStatus.PENDING, checkout_session_id="cs_lookup")

    status = PaymentStatusService(db, gateway=gateway).get_status("cs_lookup", user)

    assert status["payment_approved"] is False
    assert status["subscription_created"] is True


def test_guest_subscription_reports_payment_only(db, gateway):
    db.add(PendingGuestSubscription(
        email="guest@example.com",
        external_subscription_id="sub_guest",
        status=SubscriptionStatus.ACTIVE,
    ))
    db.commit()

    status = PaymentStatusService(db, gateway=gateway).get_status("sub_guest")

    assert status["payment_approved"] is True
    assert status["subscription_created"] is False
    assert status["ready"] is False


def test_unknown_payment_raises_not_found(db, gateway):
    with pytest.raises(PaymentNotFoundError):
        PaymentStatusService(db, gateway=gateway).get_status("cs_missing")


def test_card_invoice_payment_intent_resolves_subscription(db, gateway, make_user, make_subscription):
    user = make_user()
    subscription = make_subscription(user.id, external_id="sub_card", status=SubscriptionStatus.PAST_DUE)
    db.add(PaymentTransaction(
        subscription_id=subscription.id,
        user_id=user.id,
        external_invoice_id="in_card",
        external_payment_id="pi_card_invoice",
        status=TransactionStatus.APPROVED,
        amount_cents=2990,
    ))
    db.commit()

    status = PaymentStatusService(db, gateway=gateway).get_status("pi_card_invoice", user)

    assert status["payment_approved"] is True
    assert status["subscription_created"] is True
    assert status["profile_activated"] is False
    assert status["ready"] is False


def test_guest_subscription_found_by_checkout_session(db, gateway):
    db.add(PendingGuestSubscription(
        email="guest@example.com",
        external_subscription_id="sub_guest_1",
        checkout_session_id="cs_guest_1",
        status=SubscriptionStatus.ACTIVE,
    ))
    db.commit()
    service = PaymentStatusService(db, gateway=gateway)

    by_checkout = service.get_status("cs_guest_1")

    assert by_checkout == service.get_status("sub_guest_1")
    assert by_checkout["payment_approved"] is True
    assert by_checkout["ready"] is False
