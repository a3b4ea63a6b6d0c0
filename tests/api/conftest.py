from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core.security import create_access_token
from app.db.session import get_db
from app.main import app
from app.services.notification_service import PurchaseNotifier


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with patch.object(PurchaseNotifier, "activation_completed") as activation_completed:
        test_client = TestClient(app)
        test_client.activation_completed = activation_completed
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}
    return _headers
