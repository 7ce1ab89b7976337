"""
Unit tests for the FastAPI route gates.

Builds the application with a mocked database and mounts small routes that
stack the dependencies the way application routes do.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi import Depends, HTTPException
from fastapi.testclient import TestClient

from rootsreach.app import create_app
from rootsreach.auth.dependencies import (enforce_role_rate_limit,
                                          ensure_resource_access,
                                          get_current_account,
                                          reject_suspicious_requests,
                                          require_permission,
                                          require_requirements, require_roles)
from rootsreach.auth.jwt import encode_jwt_token
from rootsreach.models import Account
from rootsreach.security.policy import (ORDER_OPERATIONS, PRODUCT_OPERATIONS,
                                        RateLimit)
from rootsreach.utils.time import utcnow


@pytest.fixture
def users(mock_mongo_database):
    return mock_mongo_database["users"]


@pytest.fixture
def audit_events(mock_mongo_database):
    return mock_mongo_database["_rootsreach_auth_audit"].insert_one


@pytest.fixture
def client(mock_mongo_database, security_config):
    app = create_app(mock_mongo_database, security_config)

    @app.get("/me-only")
    async def me_only(account: Account = Depends(get_current_account)):
        return {"id": account.id}

    @app.post("/products")
    async def create_product(
        account: Account = Depends(require_permission("product", "create")),
        _: Account = Depends(require_requirements(PRODUCT_OPERATIONS)),
    ):
        return {"id": account.id}

    @app.post("/orders")
    async def create_order(
        account: Account = Depends(require_permission("order", "create")),
        _: Account = Depends(require_requirements(ORDER_OPERATIONS)),
    ):
        return {"id": account.id}

    @app.get("/reports")
    async def reports(account: Account = Depends(require_roles("admin"))):
        return {"id": account.id}

    @app.get("/feed")
    async def feed(account: Account = Depends(enforce_role_rate_limit)):
        return {"id": account.id}

    @app.post("/search", dependencies=[Depends(reject_suspicious_requests)])
    async def search():
        return {"ok": True}

    @app.get("/items", dependencies=[Depends(reject_suspicious_requests)])
    async def items():
        return {"ok": True}

    return TestClient(app)


@pytest.fixture
def auth_header(security_config):
    def build(account_id, token_type="access", expires_in=300):
        token = encode_jwt_token(
            {"user_id": str(account_id), "type": token_type},
            security_config.secret_key,
            expires_in=expires_in,
        )
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.mark.unit
class TestGetCurrentAccount:
    """Test bearer token authentication."""

    def test_missing_token(self, client):
        response = client.get("/me-only")
        assert response.status_code == 401
        assert response.json()["detail"] == "Access token required"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        response = client.get("/me-only", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_expired_token(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory()
        users.find_one.return_value = doc
        response = client.get("/me-only", headers=auth_header(doc["_id"], expires_in=-30))
        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    def test_refresh_token_rejected(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory()
        users.find_one.return_value = doc
        response = client.get("/me-only", headers=auth_header(doc["_id"], token_type="refresh"))
        assert response.status_code == 401

    def test_unknown_account(self, client, auth_header):
        response = client.get("/me-only", headers=auth_header("65f000000000000000000000"))
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token or user not found"

    def test_inactive_account(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory(isActive=False)
        users.find_one.return_value = doc
        assert client.get("/me-only", headers=auth_header(doc["_id"])).status_code == 401

    def test_locked_account(self, client, users, account_doc_factory, auth_header):
        """Test a valid token for a locked account answers 423."""
        doc = account_doc_factory(loginAttempts=5, lockUntil=utcnow() + timedelta(hours=1))
        users.find_one.return_value = doc
        response = client.get("/me-only", headers=auth_header(doc["_id"]))
        assert response.status_code == 423

    def test_valid_token(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory()
        users.find_one.return_value = doc
        response = client.get("/me-only", headers=auth_header(doc["_id"]))
        assert response.status_code == 200
        assert response.json() == {"id": str(doc["_id"])}
        assert "X-Correlation-ID" in response.headers


@pytest.mark.unit
class TestPolicyGates:
    """Test permission, requirement and role gates."""

    def test_permission_granted(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory(role="artisan", isIdentityVerified=True)
        users.find_one.return_value = doc
        assert client.post("/products", headers=auth_header(doc["_id"])).status_code == 200

    def test_permission_denied(
        self, client, users, account_doc_factory, auth_header, audit_events
    ):
        """Test a customer cannot create products and the denial is audited."""
        doc = account_doc_factory(role="customer")
        users.find_one.return_value = doc

        response = client.post("/products", headers=auth_header(doc["_id"]))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"
        event = audit_events.call_args.args[0]
        assert event["action"] == "permission_denied"
        assert event["details"]["resource"] == "product"

    def test_identity_requirement(self, client, users, account_doc_factory, auth_header):
        """Test an unverified artisan gets 403 IDENTITY_VERIFICATION_REQUIRED."""
        doc = account_doc_factory(role="artisan", isIdentityVerified=False)
        users.find_one.return_value = doc

        response = client.post("/products", headers=auth_header(doc["_id"]))

        assert response.status_code == 403
        assert response.json()["detail"] == {
            "message": "Identity verification required for this action",
            "code": "IDENTITY_VERIFICATION_REQUIRED",
        }

    def test_address_requirement(self, client, users, account_doc_factory, auth_header):
        """Test a customer without addresses gets 400 ADDRESS_REQUIRED."""
        doc = account_doc_factory(role="customer", addresses=[])
        users.find_one.return_value = doc

        response = client.post("/orders", headers=auth_header(doc["_id"]))

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ADDRESS_REQUIRED"

    def test_customer_with_address_orders(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory(role="customer", addresses=[{"city": "Jaipur"}])
        users.find_one.return_value = doc
        assert client.post("/orders", headers=auth_header(doc["_id"])).status_code == 200

    def test_role_gate(self, client, users, account_doc_factory, auth_header):
        doc = account_doc_factory(role="distributor")
        users.find_one.return_value = doc
        response = client.get("/reports", headers=auth_header(doc["_id"]))
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_ROLE"

        users.find_one.return_value = account_doc_factory(_id=doc["_id"], role="admin")
        assert client.get("/reports", headers=auth_header(doc["_id"])).status_code == 200


@pytest.mark.unit
class TestRoleRateLimit:
    def test_limit_by_role(self, client, users, account_doc_factory, auth_header):
        """Test the per-account window answers 429 once exhausted."""
        doc = account_doc_factory(role="customer")
        users.find_one.return_value = doc

        with patch(
            "rootsreach.auth.dependencies.get_rate_limit",
            return_value=RateLimit(max_attempts=2, window_seconds=60),
        ):
            for _ in range(2):
                assert client.get("/feed", headers=auth_header(doc["_id"])).status_code == 200
            response = client.get("/feed", headers=auth_header(doc["_id"]))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["detail"]["code"] == "RATE_LIMIT_EXCEEDED"


@pytest.mark.unit
class TestSuspiciousRequests:
    def test_nosql_body_blocked(self, client, audit_events):
        response = client.post("/search", json={"email": {"$ne": None}})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SECURITY_VIOLATION"
        assert audit_events.call_args.args[0]["action"] == "suspicious_activity"

    def test_scraping_logged_not_blocked(self, client, audit_events):
        response = client.get("/items", params={"limit": "1000"})
        assert response.status_code == 200
        assert audit_events.call_args.args[0]["details"] == {
            "patterns": ["POTENTIAL_DATA_SCRAPING"]
        }

    def test_clean_request(self, client, audit_events):
        assert client.get("/items", params={"limit": "10"}).status_code == 200
        audit_events.assert_not_called()


@pytest.mark.unit
class TestEnsureResourceAccess:
    """Test document ownership checks."""

    @pytest.mark.asyncio
    async def test_owner_allowed(self):
        account = Account(id="a1", role="artisan")
        await ensure_resource_access(account, "product", {"_id": "p1", "sellerId": "a1"}, "update")

    @pytest.mark.asyncio
    async def test_other_owner_refused(self):
        account = Account(id="a1", role="artisan")
        with pytest.raises(HTTPException) as exc_info:
            await ensure_resource_access(
                account, "product", {"_id": "p1", "sellerId": "a2"}, "update"
            )
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["code"] == "RESOURCE_ACCESS_DENIED"

    @pytest.mark.asyncio
    async def test_all_scope_bypasses_ownership(self):
        """Test roles holding action:all reach any document."""
        await ensure_resource_access(
            Account(id="x", role="admin"), "order", {"buyerId": "b"}, "update"
        )
        await ensure_resource_access(
            Account(id="d1", role="distributor"), "product", {"sellerId": "a2"}, "read"
        )
