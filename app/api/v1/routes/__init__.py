from fastapi import APIRouter

from app.api.v1.routes import auth, payments, subscription, webhooks

router = APIRouter()
router.include_router(auth.router, prefix="/auth")
router.include_router(payments.router, prefix="/payments")
router.include_router(subscription.router, prefix="/subscription")
router.include_router(webhooks.router, prefix="/webhooks")
