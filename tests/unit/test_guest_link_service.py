from unittest.mock import Mock

from app.models.lifetime_purchase import LifetimePurchase
from app.models.payment_transaction import PaymentTransaction
from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.pix_payment import PixPayment
from app.models.profile import Profile
from app.models.status import LifetimeStatus, PixStatus, PlanType, ProfileStatus, SubscriptionStatus
from app.models.subscription import Subscription
from app.repositories.payment_transaction_repository import PaymentTransactionRepository
from app.services.guest_link_service import GuestLinkService
from app.services.payment_status_service import PaymentStatusService
from app.services.stripe_webhook_service import HandlerResult, StripeWebhookService
from app.schemas.stripe_events import CheckoutSession, Invoice, StripeSubscription


def _profile(db, user_id):
    db.expire_all()
    return db.query(Profile).filter(Profile.user_id == user_id).one()


def _guest_checkout(db, notifier, email="guest@example.com", paid=True):
    session = CheckoutSession.model_validate({
        "id": "cs_guest",
        "mode": "subscription",
        "payment_status": "paid" if paid else "unpaid",
        "subscription": "sub_guest",
        "customer": "cus_guest",
        "amount_total": 2990,
        "currency": "brl",
        "metadata": {"isGuestCheckout": "true", "email": email, "isBundle": "true", "phone": "5511977776666"},
    })
    StripeWebhookService(db, notifier=notifier).handle_checkout_completed(session)


def test_guest_subscription_is_linked_and_activated(db, notifier, make_user):
    _guest_checkout(db, notifier, email="A@Example.com")
    user = make_user(email="a@example.com")

    summary = GuestLinkService(db, notifier=notifier).link_for_user(user)

    assert summary == {"subscriptions": 1, "pix_payments": 0, "lifetime_purchases": 0}
    subscription = db.query(Subscription).one()
    assert subscription.user_id == user.id
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert db.query(PendingGuestSubscription).one().linked_user_id == user.id
    assert _profile(db, user.id).plan_type == PlanType.PRO
    notifier.activation_completed.assert_called_once_with(user, "Premium", True, "5511977776666")


def test_second_link_finds_nothing(db, notifier, make_user):
    _guest_checkout(db, notifier)
    user = make_user(email="guest@example.com")
    linker = GuestLinkService(db, notifier=notifier)

    linker.link_for_user(user)
    assert linker.link_for_user(user) == {"subscriptions": 0, "pix_payments": 0, "lifetime_purchases": 0}
    assert db.query(Subscription).count() == 1
    assert notifier.activation_completed.call_count == 1


def test_claimed_row_cannot_be_linked_to_another_user(db, notifier, make_user):
    _guest_checkout(db, notifier)
    first = make_user(email="guest@example.com")
    second = make_user(email="someone@example.com")
    linker = GuestLinkService(db, notifier=notifier)
    pending = db.query(PendingGuestSubscription).one()

    assert linker.link_pending_subscription(pending, first) is not None
    db.commit()
    assert linker.link_pending_subscription(pending, second) is None

    db.expire_all()
    assert db.query(PendingGuestSubscription).one().linked_user_id == first.id
    assert db.query(Subscription).one().user_id == first.id


def test_unpaid_guest_subscription_is_linked_without_activation(db, notifier, make_user):
    _guest_checkout(db, notifier, paid=False)
    user = make_user(email="guest@example.com")

    GuestLinkService(db, notifier=notifier).link_for_user(user)

    assert db.query(Subscription).one().status == SubscriptionStatus.PENDING
    assert _profile(db, user.id).plan_type == PlanType.FREE
    notifier.activation_completed.assert_not_called()


def test_paid_guest_pix_is_granted_on_link(db, notifier, make_user):
    db.add(PixPayment(
        payment_intent_id="pi_guest",
        email="guest@example.com",
        plan_type="monthly",
        amount_cents=2990,
        status=PixStatus.PAID,
    ))
    db.add(PixPayment(
        payment_intent_id="pi_guest_waiting",
        email="guest@example.com",
        plan_type="monthly",
        amount_cents=2990,
    ))
    db.commit()
    user = make_user(email="guest@example.com")

    summary = GuestLinkService(db, notifier=notifier).link_for_user(user)

    assert summary["pix_payments"] == 2
    subscription = db.query(Subscription).one()
    assert subscription.external_subscription_id == "pix_pi_guest"
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert _profile(db, user.id).plan_type == PlanType.PRO
    assert all(pix.user_id == user.id for pix in db.query(PixPayment).all())
    notifier.activation_completed.assert_called_once()


def test_guest_lifetime_purchase_is_linked(db, notifier, make_user):
    db.add(LifetimePurchase(
        email="guest@example.com",
        checkout_session_id="cs_life_guest",
        payment_intent_id="pi_life_guest",
        amount_cents=29700,
        status=LifetimeStatus.COMPLETED,
    ))
    db.commit()
    user = make_user(email="guest@example.com")
    linker = GuestLinkService(db, notifier=notifier)

    assert linker.link_for_user(user)["lifetime_purchases"] == 1
    assert linker.link_for_user(user)["lifetime_purchases"] == 0
    assert _profile(db, user.id).plan_type == PlanType.LIFETIME
    notifier.activation_completed.assert_called_once_with(user, "Premium Vitalício", False, None)


def test_link_failure_does_not_break_login(db, make_user):
    from app.repositories.user_repository import UserRepository
    from app.services.auth_service import AuthService

    user = make_user(email="guest@example.com")
    linker = Mock(spec=GuestLinkService)
    linker.link_for_user.side_effect = RuntimeError("db caiu")

    result = AuthService(UserRepository(db), linker=linker).login("Guest@Example.com", "senha-forte-123")

    assert result["token_type"] == "bearer"
    assert result["user"].id == user.id
    linker.link_for_user.assert_called_once()


def test_failed_invoice_before_linking_leaves_plan_past_due(db, notifier, make_user):
    _guest_checkout(db, notifier, email="a@b.com")
    service = StripeWebhookService(db, notifier=notifier)
    failed = Invoice.model_validate({"id": "in_guest_fail", "subscription": "sub_guest"})

    assert service.handle_invoice_payment_failed(failed) == HandlerResult.GUEST_PENDING
    assert db.query(PendingGuestSubscription).one().status == SubscriptionStatus.PAST_DUE

    user = make_user(email="a@b.com")
    GuestLinkService(db, notifier=notifier).link_for_user(user)

    profile = _profile(db, user.id)
    assert profile.subscription_status == ProfileStatus.PAST_DUE
    assert db.query(Subscription).one().status == SubscriptionStatus.PAST_DUE
    notifier.activation_completed.assert_not_called()


def test_past_due_update_then_recovery_before_linking(db, notifier, make_user):
    _guest_checkout(db, notifier)
    service = StripeWebhookService(db, notifier=notifier)

    past_due = StripeSubscription.model_validate({"id": "sub_guest", "status": "past_due"})
    assert service.handle_subscription_updated(past_due) == HandlerResult.GUEST_PENDING
    recovered = StripeSubscription.model_validate({"id": "sub_guest", "status": "active"})
    assert service.handle_subscription_updated(recovered) == HandlerResult.GUEST_PENDING

    user = make_user(email="guest@example.com")
    GuestLinkService(db, notifier=notifier).link_for_user(user)

    profile = _profile(db, user.id)
    assert profile.plan_type == PlanType.PRO
    assert profile.subscription_status == ProfileStatus.ACTIVE


def test_canceled_guest_subscription_is_not_revived_by_late_invoice(db, notifier, make_user):
    _guest_checkout(db, notifier)
    service = StripeWebhookService(db, notifier=notifier)
    service.handle_subscription_deleted(StripeSubscription.model_validate({"id": "sub_guest", "status": "canceled"}))

    late = Invoice.model_validate({"id": "in_late", "subscription": "sub_guest", "amount_paid": 2990})
    service.handle_invoice_paid(late)
    user = make_user(email="guest@example.com")
    GuestLinkService(db, notifier=notifier).link_for_user(user)

    db.expire_all()
    assert db.query(PendingGuestSubscription).one().status == SubscriptionStatus.CANCELED
    assert _profile(db, user.id).plan_type == PlanType.FREE


def test_guest_invoice_is_kept_in_ledger_through_linking(db, notifier, make_user):
    _guest_checkout(db, notifier)
    invoice = Invoice.model_validate({
        "id": "in_guest_1",
        "subscription": "sub_guest",
        "payment_intent": "pi_guest_invoice",
        "amount_paid": 2990,
        "currency": "brl",
    })
    service = StripeWebhookService(db, notifier=notifier)

    assert service.handle_invoice_paid(invoice) == HandlerResult.GUEST_PENDING
    assert service.handle_invoice_paid(invoice) == HandlerResult.DUPLICATE

    user = make_user(email="guest@example.com")
    GuestLinkService(db, notifier=notifier).link_for_user(user)

    transaction = db.query(PaymentTransaction).one()
    assert transaction.external_invoice_id == "in_guest_1"
    assert transaction.amount_cents == 2990
    subscription = db.query(Subscription).one()
    assert PaymentTransactionRepository(db).list_by_subscription(subscription) == [transaction]

    status = PaymentStatusService(db, gateway=Mock()).get_status("pi_guest_invoice", user)
    assert status["ready"] is True
