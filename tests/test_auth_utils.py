from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from jose import jwt

from padu_api.auth.utils import JWT_ALGORITHM, create_access_token, verify_token
from padu_api.core.config import settings


class TestJWT:
    def test_create_access_token(self):
        token = create_access_token(uuid4())
        assert isinstance(token, str)
        assert len(token) > 0

    def test_verify_token_success(self):
        user_id = uuid4()
        payload = verify_token(create_access_token(user_id))
        assert payload is not None
        assert payload["sub"] == str(user_id)
        assert payload["user_id"] == str(user_id)
        assert payload["type"] == "access"

    def test_verify_token_invalid(self):
        assert verify_token("invalid.token.here") is None

    def test_verify_token_expired(self):
        token = create_access_token(uuid4(), expires_delta=timedelta(seconds=-1))
        assert verify_token(token) is None

    def test_verify_token_wrong_secret(self):
        token = jwt.encode({"sub": "x", "type": "access"}, "other-secret", algorithm=JWT_ALGORITHM)
        assert verify_token(token) is None


class TestCurrentUserDependency:
    def test_refresh_token_type_rejected(self, client):
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "refresh"}, settings.jwt_secret, algorithm=JWT_ALGORITHM
        )
        response = client.get("/api/v1/imports/jobs", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_non_uuid_subject_rejected(self, client):
        token = jwt.encode(
            {"sub": "user123", "type": "access"}, settings.jwt_secret, algorithm=JWT_ALGORITHM
        )
        response = client.get("/api/v1/imports/jobs", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token payload"
