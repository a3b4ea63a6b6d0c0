# Import all models so metadata.create_all can see them
from app.models.user import User
from app.models.profile import Profile
from app.models.subscription import Subscription
from app.models.payment_transaction import PaymentTransaction
from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.lifetime_purchase import LifetimePurchase
from app.models.pix_payment import PixPayment

__all__ = [
    "User",
    "Profile",
    "Subscription",
    "PaymentTransaction",
    "PendingGuestSubscription",
    "LifetimePurchase",
    "PixPayment",
]
