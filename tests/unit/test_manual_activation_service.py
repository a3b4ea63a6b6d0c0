from unittest.mock import Mock

import pytest

from app.core.errors import (
    PaymentGatewayError,
    PaymentNotApprovedError,
    PaymentNotFoundError,
    PaymentOwnershipError,
)
from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.pix_payment import PixPayment
from app.models.profile import Profile
from app.models.status import PixStatus, PlanType, SubscriptionStatus
from app.models.subscription import Subscription
from app.services.activation_service import ActivationOutcome
from app.services.manual_activation_service import ManualActivationService
from app.services.stripe_gateway import StripeGateway


@pytest.fixture
def gateway():
    return Mock(spec=StripeGateway)


def _intent(status="succeeded", **metadata):
    return {"id": "pi_manual", "status": status, "amount": 2990, "currency": "brl", "metadata": metadata}


def _add_pix(db, user_id=None, status=PixStatus.PENDING, email=None):
    db.add(PixPayment(
        payment_intent_id="pi_manual",
        user_id=user_id,
        email=email,
        plan_type="monthly",
        amount_cents=2990,
        status=status,
    ))
    db.commit()


def _plan(db, user_id):
    db.expire_all()
    return db.query(Profile).filter(Profile.user_id == user_id).one().plan_type


def test_manual_activation_of_confirmed_pix(db, gateway, notifier, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id)
    gateway.retrieve_payment_intent.return_value = _intent(userId=str(user.id))
    service = ManualActivationService(db, gateway=gateway, notifier=notifier)

    result = service.activate("pi_manual", user)

    assert result["activated"] is True
    assert result["outcome"] == ActivationOutcome.ACTIVATED
    assert result["plan_type"] == PlanType.PRO
    assert result["expires_at"] is not None
    assert db.query(PixPayment).one().status == PixStatus.PAID
    notifier.activation_completed.assert_called_once()

    # Clique repetido (ou webhook que chegou junto) converge para o mesmo estado
    again = service.activate("pi_manual", user)
    assert again["outcome"] == ActivationOutcome.ALREADY_ACTIVE
    assert db.query(Subscription).count() == 1
    assert notifier.activation_completed.call_count == 1


def test_pix_not_confirmed_by_processor(db, gateway, notifier, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id)
    gateway.retrieve_payment_intent.return_value = _intent(status="requires_action")

    with pytest.raises(PaymentNotApprovedError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", user)

    assert db.query(PixPayment).one().status == PixStatus.PENDING
    assert _plan(db, user.id) == PlanType.FREE
    notifier.activation_completed.assert_not_called()


def test_gateway_error_surfaces(db, gateway, notifier, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id)
    gateway.retrieve_payment_intent.side_effect = PaymentGatewayError("stripe fora")

    with pytest.raises(PaymentGatewayError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", user)


def test_already_paid_pix_skips_processor(db, gateway, notifier, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id, status=PixStatus.PAID)

    result = ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", user)

    assert result["outcome"] == ActivationOutcome.ACTIVATED
    gateway.retrieve_payment_intent.assert_not_called()


def test_guest_pix_is_bound_to_requester(db, gateway, notifier, make_user):
    user = make_user(email="guest@example.com")
    _add_pix(db, email="guest@example.com", status=PixStatus.PAID)

    ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", user)

    assert db.query(PixPayment).one().user_id == user.id
    assert _plan(db, user.id) == PlanType.PRO


def test_pix_unknown_to_ledger_is_recorded_from_processor(db, gateway, notifier, make_user):
    user = make_user()
    gateway.retrieve_payment_intent.return_value = _intent(userId=str(user.id), planType="annual")

    result = ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", user)

    assert result["outcome"] == ActivationOutcome.ACTIVATED
    pix = db.query(PixPayment).one()
    assert pix.plan_type == "annual"
    assert pix.user_id == user.id


def test_expired_pix_cannot_be_activated(db, gateway, notifier, make_user):
    user = make_user()
    _add_pix(db, user_id=user.id, status=PixStatus.EXPIRED)

    with pytest.raises(PaymentNotApprovedError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", user)
    gateway.retrieve_payment_intent.assert_not_called()


def test_someone_elses_payment_is_forbidden(db, gateway, notifier, make_user):
    owner = make_user()
    intruder = make_user(email="intruder@example.com")
    _add_pix(db, user_id=owner.id, status=PixStatus.PAID)

    with pytest.raises(PaymentOwnershipError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("pi_manual", intruder)
    assert _plan(db, intruder.id) == PlanType.FREE


def test_canceled_subscription_is_rejected(db, gateway, notifier, make_user, make_subscription):
    user = make_user()
    make_subscription(user.id, external_id="sub_dead", status=SubscriptionStatus.CANCELED)

    with pytest.raises(PaymentNotApprovedError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("sub_dead", user)


def test_unpaid_subscription_is_rejected(db, gateway, notifier, make_user, make_subscription):
    user = make_user()
    make_subscription(user.id, external_id="sub_unpaid")

    with pytest.raises(PaymentNotApprovedError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("sub_unpaid", user)


def test_paid_guest_subscription_is_linked_on_demand(db, gateway, notifier, make_user):
    user = make_user(email="guest@example.com")
    db.add(PendingGuestSubscription(
        email="guest@example.com",
        external_subscription_id="sub_guest",
        status=SubscriptionStatus.ACTIVE,
    ))
    db.commit()

    result = ManualActivationService(db, gateway=gateway, notifier=notifier).activate("sub_guest", user)

    assert result["outcome"] == ActivationOutcome.ACTIVATED
    assert db.query(Subscription).one().user_id == user.id

def test_guest_subscription_found_by_checkout_session(db, gateway, notifier, make_user):
    user = make_user(email="guest@example.com")
    db.add(PendingGuestSubscription(
        email="guest@example.com",
        external_subscription_id="sub_guest_cs",
        checkout_session_id="cs_guest_1",
        status=SubscriptionStatus.ACTIVE,
    ))
    db.commit()

    result = ManualActivationService(db, gateway=gateway, notifier=notifier).activate("cs_guest_1", user)

    assert result["outcome"] == ActivationOutcome.ACTIVATED
    subscription = db.query(Subscription).one()
    assert subscription.external_subscription_id == "sub_guest_cs"
    assert subscription.user_id == user.id
    assert _plan(db, user.id) == PlanType.PRO


def test_past_due_guest_subscription_is_not_activated_on_demand(db, gateway, notifier, make_user):
    user = make_user(email="guest@example.com")
    db.add(PendingGuestSubscription(
        email="guest@example.com",
        external_subscription_id="sub_guest_late",
        status=SubscriptionStatus.PAST_DUE,
    ))
    db.commit()

    with pytest.raises(PaymentNotApprovedError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("sub_guest_late", user)
    assert db.query(Subscription).count() == 0



def test_unknown_payment(db, gateway, notifier, make_user):
    user = make_user()
    with pytest.raises(PaymentNotFoundError):
        ManualActivationService(db, gateway=gateway, notifier=notifier).activate("cs_nothing", user)
