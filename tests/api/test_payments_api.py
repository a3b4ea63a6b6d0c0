from app.models.pix_payment import PixPayment
from app.models.status import PixStatus


def _add_pix(db, user_id, status=PixStatus.PAID):
    db.add(PixPayment(payment_intent_id="pi_api", user_id=user_id, plan_type="monthly", amount_cents=2990, status=status))
    db.commit()


def test_status_uses_camel_case_keys(client, db, make_user, auth_headers):
    user = make_user()
    _add_pix(db, user.id)

    response = client.get("/api/v1/payments/pi_api/status", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json() == {
        "paymentApproved": True,
        "profileActivated": False,
        "subscriptionCreated": False,
        "ready": False,
    }


def test_status_for_unknown_payment(client):
    response = client.get("/api/v1/payments/cs_unknown/status")

    assert response.status_code == 404
    assert response.json()["code"] == "payment_not_found"


def test_status_of_someone_elses_payment(client, db, make_user, auth_headers):
    owner = make_user()
    intruder = make_user(email="intruder@example.com")
    _add_pix(db, owner.id)

    response = client.get("/api/v1/payments/pi_api/status", headers=auth_headers(intruder))

    assert response.status_code == 403
    assert response.json()["code"] == "payment_forbidden"


def test_manual_activation_requires_auth(client):
    assert client.post("/api/v1/payments/pi_api/activate").status_code == 401


def test_manual_activation_then_ready(client, db, make_user, auth_headers):
    user = make_user()
    _add_pix(db, user.id)

    response = client.post("/api/v1/payments/pi_api/activate", headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["activated"] is True
    assert body["outcome"] == "activated"
    assert body["planType"] == "pro"
    assert body["subscriptionStatus"] == "active"
    assert body["expiresAt"]
    client.activation_completed.assert_called_once()

    status = client.get("/api/v1/payments/pi_api/status", headers=auth_headers(user)).json()
    assert status["ready"] is True


def test_manual_activation_of_failed_pix(client, db, make_user, auth_headers):
    user = make_user()
    _add_pix(db, user.id, status=PixStatus.FAILED)

    response = client.post("/api/v1/payments/pi_api/activate", headers=auth_headers(user))

    assert response.status_code == 409
    assert response.json()["code"] == "payment_not_approved"
