"""
API tests for the sync and transaction routes, through the auth middleware.
"""
import asyncio
import os
import sys
import time
from unittest.mock import patch
from uuid import uuid4

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from internal_auth import TEST_AUTH_SECRET, signed_headers  # noqa: E402

os.environ["INTERNAL_AUTH_SECRET"] = TEST_AUTH_SECRET

from fastapi.testclient import TestClient  # noqa: E402

from ledger_db import (  # noqa: E402
    OTHER_USER_ID,
    USER_ID,
    add_account,
    add_transaction,
    add_user,
    make_sessionmaker,
)
from pocketledger.database import get_db  # noqa: E402
from pocketledger.main import app  # noqa: E402


def _client():
    """TestClient bound to a fresh in-memory ledger, plus its sessionmaker."""
    session_factory = make_sessionmaker()
    db = session_factory()
    add_user(db, USER_ID)
    add_user(db, OTHER_USER_ID)
    db.close()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), session_factory


def _seed_accounts(session_factory):
    db = session_factory()
    try:
        checking = add_account(db, name="Checking")
        savings = add_account(db, name="Savings")
        return checking.id, savings.id
    finally:
        db.close()


def test_health_is_public() -> None:
    client, _ = _client()
    try:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        print("✓ health endpoint is public")
    finally:
        app.dependency_overrides.clear()


def test_requests_without_credentials_are_rejected() -> None:
    client, _ = _client()
    try:
        response = client.post("/api/sync", json={"deviceId": str(uuid4())})
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing authentication headers."

        stale = signed_headers("GET", "/api/sync/time", USER_ID, timestamp=int(time.time()) - 3600)
        assert client.get("/api/sync/time", headers=stale).status_code == 401

        forged = signed_headers("GET", "/api/sync/time", USER_ID)
        forged["x-pocketledger-user-id"] = OTHER_USER_ID
        assert client.get("/api/sync/time", headers=forged).status_code == 401
        print("✓ unauthenticated requests rejected")
    finally:
        app.dependency_overrides.clear()


def test_bearer_api_key_authenticates() -> None:
    client, _ = _client()
    try:
        with patch("pocketledger.db_helpers.validate_api_key", return_value=USER_ID):
            response = client.get("/api/sync/time", headers={"Authorization": "Bearer pf_valid"})
        assert response.status_code == 200
        assert response.json()["serverTime"].endswith("Z")

        with patch("pocketledger.db_helpers.validate_api_key", return_value=None):
            response = client.get("/api/sync/time", headers={"Authorization": "Bearer pf_revoked"})
        assert response.status_code == 401
        print("✓ bearer API keys")
    finally:
        app.dependency_overrides.clear()


def test_api_key_check_runs_off_the_event_loop() -> None:
    client, _ = _client()
    loops = []

    def lookup(token):
        try:
            loops.append(asyncio.get_running_loop())
        except RuntimeError:
            loops.append(None)
        return USER_ID

    try:
        with patch("pocketledger.db_helpers.validate_api_key", side_effect=lookup):
            response = client.get("/api/sync/time", headers={"Authorization": "Bearer pf_valid"})
        assert response.status_code == 200
        assert loops == [None]
        print("✓ API key lookup runs in a worker thread")
    finally:
        app.dependency_overrides.clear()


def test_sync_round_trip() -> None:
    client, session_factory = _client()
    try:
        checking_id, savings_id = _seed_accounts(session_factory)
        account_id = str(uuid4())
        body = {
            "deviceId": str(uuid4()),
            "lastSyncAt": None,
            "accounts": [{
                "id": account_id,
                "name": "Wallet",
                "accountType": "WALLET",
                "currency": "EUR",
                "openingBalance": "20.00",
                "isDeleted": False,
                "createdAt": "2025-01-01T00:00:00Z",
                "updatedAt": "2025-01-01T00:00:00Z",
            }],
        }

        response = client.post("/api/sync", json=body, headers=signed_headers("POST", "/api/sync", USER_ID))

        assert response.status_code == 200
        payload = response.json()
        assert payload["serverTime"] == payload["syncedAt"]
        assert payload["serverTime"].endswith("Z")
        assert payload["conflicts"] == []
        pulled_ids = {a["id"] for a in payload["changes"]["accounts"]}
        assert pulled_ids == {account_id, str(checking_id), str(savings_id)}
        assert payload["changes"]["categories"] == []

        # Replay with the watermark: the pushed account is not new any more.
        body["lastSyncAt"] = payload["serverTime"]
        replay = client.post("/api/sync", json=body, headers=signed_headers("POST", "/api/sync", USER_ID))
        assert replay.status_code == 200
        assert replay.json()["changes"]["accounts"] == []
        assert [c["reason"] for c in replay.json()["conflicts"]] == ["Same timestamp, server is source of truth"]
        print("✓ sync round trip")
    finally:
        app.dependency_overrides.clear()


def test_sync_rejects_malformed_batch() -> None:
    client, _ = _client()
    try:
        headers = signed_headers("POST", "/api/sync", USER_ID)
        missing_device = client.post("/api/sync", json={"accounts": []}, headers=headers)
        assert missing_device.status_code == 422

        bad_type = client.post(
            "/api/sync",
            json={"deviceId": str(uuid4()), "transactions": [{"id": str(uuid4()), "type": "GIFT"}]},
            headers=headers,
        )
        assert bad_type.status_code == 422
        print("✓ malformed batches rejected")
    finally:
        app.dependency_overrides.clear()


def test_transfer_endpoint() -> None:
    client, session_factory = _client()
    try:
        checking_id, savings_id = _seed_accounts(session_factory)
        body = {"fromAccountId": str(checking_id), "toAccountId": str(savings_id), "amount": "75.50"}

        response = client.post(
            "/api/transactions/transfer",
            json=body,
            headers=signed_headers("POST", "/api/transactions/transfer", USER_ID),
        )

        assert response.status_code == 201
        payload = response.json()
        assert payload["status"] == "completed"
        assert payload["transferId"] == payload["fromTransaction"]["id"]
        assert payload["fromTransaction"]["amount"] == "-75.50"
        assert payload["toTransaction"]["amount"] == "75.50"
        assert payload["fromTransaction"]["linkedTransactionId"] == payload["toTransaction"]["id"]
        assert payload["toTransaction"]["type"] == "TRANSFER"

        same = client.post(
            "/api/transactions/transfer",
            json={**body, "toAccountId": str(checking_id)},
            headers=signed_headers("POST", "/api/transactions/transfer", USER_ID),
        )
        assert same.status_code == 400
        assert same.json()["error_code"] == "SAME_ACCOUNT_TRANSFER"

        foreign = client.post(
            "/api/transactions/transfer",
            json=body,
            headers=signed_headers("POST", "/api/transactions/transfer", OTHER_USER_ID),
        )
        assert foreign.status_code == 404
        assert foreign.json()["error_code"] == "ACCOUNT_NOT_FOUND"
        print("✓ transfer endpoint")
    finally:
        app.dependency_overrides.clear()


def test_transfer_legs_cannot_be_patched_but_can_be_deleted() -> None:
    client, session_factory = _client()
    try:
        checking_id, savings_id = _seed_accounts(session_factory)
        created = client.post(
            "/api/transactions",
            json={"accountId": str(checking_id), "toAccountId": str(savings_id), "type": "TRANSFER", "amount": "10.00"},
            headers=signed_headers("POST", "/api/transactions", USER_ID),
        )
        assert created.status_code == 201
        debit_id = created.json()["id"]
        credit_id = created.json()["linkedTransactionId"]

        path = f"/api/transactions/{credit_id}"
        patched = client.patch(path, json={"note": "edited"}, headers=signed_headers("PATCH", path, USER_ID))
        assert patched.status_code == 400
        assert patched.json()["error_code"] == "TRANSFER_CANNOT_BE_MODIFIED"

        deleted = client.delete(path, headers=signed_headers("DELETE", path, USER_ID))
        assert deleted.status_code == 204

        debit_path = f"/api/transactions/{debit_id}"
        gone = client.get(debit_path, headers=signed_headers("GET", debit_path, USER_ID))
        assert gone.status_code == 404
        assert gone.json()["error_code"] == "TRANSACTION_NOT_FOUND"

        hard_path = f"{debit_path}?hard=true"
        removed = client.delete(hard_path, headers=signed_headers("DELETE", hard_path, USER_ID))
        assert removed.status_code == 204
        print("✓ transfer leg patch/delete via API")
    finally:
        app.dependency_overrides.clear()


def test_plain_transaction_crud() -> None:
    client, session_factory = _client()
    try:
        db = session_factory()
        try:
            account = add_account(db)
            existing = add_transaction(db, account.id, amount="12.50")
            account_id, existing_id = account.id, existing.id
        finally:
            db.close()

        path = f"/api/transactions/{existing_id}"
        fetched = client.get(path, headers=signed_headers("GET", path, USER_ID))
        assert fetched.status_code == 200
        assert fetched.json()["amount"] == "12.50"
        assert fetched.json()["accountId"] == str(account_id)

        patched = client.patch(path, json={"amount": "14.00"}, headers=signed_headers("PATCH", path, USER_ID))
        assert patched.status_code == 200
        assert patched.json()["amount"] == "14.00"

        other = client.get(path, headers=signed_headers("GET", path, OTHER_USER_ID))
        assert other.status_code == 404

        invalid = client.post(
            "/api/transactions",
            json={"accountId": str(account_id), "type": "EXPENSE", "amount": "0"},
            headers=signed_headers("POST", "/api/transactions", USER_ID),
        )
        assert invalid.status_code == 400
        assert invalid.json()["error_code"] == "INVALID_AMOUNT"
        print("✓ plain transaction CRUD")
    finally:
        app.dependency_overrides.clear()


if __name__ == "__main__":
    test_health_is_public()
    test_requests_without_credentials_are_rejected()
    test_bearer_api_key_authenticates()
    test_api_key_check_runs_off_the_event_loop()
    test_sync_round_trip()
    test_sync_rejects_malformed_batch()
    test_transfer_endpoint()
    test_transfer_legs_cannot_be_patched_but_can_be_deleted()
    test_plain_transaction_crud()
    print("All API route tests passed.")
