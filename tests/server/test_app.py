"""Tests for the sharing HTTP API (server/app.py)."""

from __future__ import annotations

from datetime import timedelta

import pytest
from starlette.testclient import TestClient

from shipfile.core.config import ShipfileSettings
from shipfile.permissions import PermissionSet, ScopeDescriptor
from shipfile.permissions.models import utcnow
from shipfile.server import create_app
from shipfile.sharing import SharingService
from shipfile.storage import InMemorySharingStore

OWNER = "owner@example.com"
BUCKET = "research"


@pytest.fixture
def client(service: SharingService) -> TestClient:
    """Test client over an in-memory service."""
    return TestClient(create_app(service=service))


def invite_payload(**overrides) -> dict:
    payload = {
        "inviterEmail": OWNER,
        "bucketName": BUCKET,
        "email": "new@example.com",
        "permissions": {"viewOnly": True, "inviteMembers": True},
        "scopeType": "specific",
        "scopeFolders": ["mit/ai"],
    }
    payload.update(overrides)
    return payload


def join(client: TestClient, **overrides) -> dict:
    response = client.post("/api/invite", json=invite_payload(**overrides))
    assert response.status_code == 201, response.json()
    token = response.json()["invitation"]["id"]
    accepted = client.post(f"/api/invite/{token}/accept")
    assert accepted.status_code == 200
    return accepted.json()["membership"]


# =============================================================================
# BASICS
# =============================================================================


class TestBasics:
    """Health, bucket registration and error mapping."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_register_bucket(self, client: TestClient) -> None:
        response = client.post("/api/buckets", json={"bucketName": "archive", "ownerEmail": "Boss@example.com"})
        assert response.status_code == 201
        assert response.json()["ownerEmail"] == "boss@example.com"

    def test_register_conflict(self, client: TestClient) -> None:
        response = client.post("/api/buckets", json={"bucketName": BUCKET, "ownerEmail": "thief@example.com"})
        assert response.status_code == 409
        assert response.json()["type"] == "ConflictError"

    def test_missing_field(self, client: TestClient) -> None:
        response = client.post("/api/buckets", json={"bucketName": "archive"})
        assert response.status_code == 400
        assert "ownerEmail" in response.json()["error"]

    def test_invalid_json(self, client: TestClient) -> None:
        response = client.post(
            "/api/authorize",
            content="not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert "Invalid JSON" in response.json()["error"]

    def test_default_service_is_in_memory(self) -> None:
        app = create_app(settings=ShipfileSettings())
        assert isinstance(app.state.service.store, InMemorySharingStore)


# =============================================================================
# AUTHORIZE
# =============================================================================


class TestAuthorize:
    """POST /api/authorize."""

    def test_owner_allowed(self, client: TestClient) -> None:
        response = client.post(
            "/api/authorize",
            json={"email": OWNER, "bucketName": BUCKET, "action": "deleteFiles", "paths": ["x"]},
        )
        assert response.status_code == 200
        assert response.json() == {"allowed": True}

    def test_scope_denied(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            "/api/authorize",
            json={"email": "new@example.com", "bucketName": BUCKET, "action": "viewOnly", "paths": ["private"]},
        )
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "outside granted scope"
        assert body["denial"] == "scope_denied"
        assert body["deniedPaths"] == ["private"]

    def test_not_a_member(self, client: TestClient) -> None:
        response = client.post(
            "/api/authorize",
            json={"email": "x@example.com", "bucketName": BUCKET, "action": "viewOnly"},
        )
        assert response.status_code == 403
        assert response.json()["denial"] == "membership_not_found"

    def test_unknown_bucket(self, client: TestClient) -> None:
        response = client.post(
            "/api/authorize",
            json={"email": OWNER, "bucketName": "missing", "action": "viewOnly"},
        )
        assert response.status_code == 404

    def test_paths_must_be_strings(self, client: TestClient) -> None:
        response = client.post(
            "/api/authorize",
            json={"email": OWNER, "bucketName": BUCKET, "action": "viewOnly", "paths": [1]},
        )
        assert response.status_code == 400


# =============================================================================
# INVITATIONS
# =============================================================================


class TestInvitations:
    """Invitation endpoints."""

    def test_create(self, client: TestClient) -> None:
        response = client.post("/api/invite", json=invite_payload())
        assert response.status_code == 201
        body = response.json()
        assert body["inviteLink"].endswith(f"/accept-invite/{body['invitation']['id']}")
        assert body["invitation"]["scope"] == {"type": "specific", "folders": ["mit/ai"]}

    def test_nested_scope_object(self, client: TestClient) -> None:
        payload = invite_payload(scope={"type": "entire"})
        response = client.post("/api/invite", json=payload)
        assert response.json()["invitation"]["scope"]["type"] == "entire"

    def test_unknown_capability_rejected(self, client: TestClient) -> None:
        response = client.post("/api/invite", json=invite_payload(permissions={"godMode": True}))
        assert response.status_code == 400

    def test_delegation_denied(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            "/api/invite",
            json=invite_payload(
                inviterEmail="new@example.com",
                email="third@example.com",
                permissions={"viewOnly": True},
                scopeFolders=["mit/ai/notes", "mit/other"],
            ),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "cannot grant access outside own scope"
        assert response.json()["denial"] == "delegation_denied"

    def test_escalation_denied(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            "/api/invite",
            json=invite_payload(
                inviterEmail="new@example.com",
                email="third@example.com",
                permissions={"uploadViewAll": True},
            ),
        )
        assert response.status_code == 403
        assert response.json()["denial"] == "escalation_denied"

    def test_get_details(self, client: TestClient) -> None:
        token = client.post("/api/invite", json=invite_payload()).json()["invitation"]["id"]
        response = client.get(f"/api/invite/{token}")
        assert response.status_code == 200
        assert response.json()["permissionsSummary"] == "View All Files, Invite Members"

    def test_get_unknown(self, client: TestClient) -> None:
        assert client.get("/api/invite/nope").status_code == 404

    def test_accepted_is_gone(self, client: TestClient) -> None:
        token = client.post("/api/invite", json=invite_payload()).json()["invitation"]["id"]
        client.post(f"/api/invite/{token}/accept")
        assert client.get(f"/api/invite/{token}").status_code == 404

    def test_expired(self, client: TestClient, service: SharingService) -> None:
        result = service.create_invitation(
            OWNER,
            BUCKET,
            "late@example.com",
            PermissionSet.of("viewOnly"),
            ScopeDescriptor.entire(),
            now=utcnow() - timedelta(days=10),
        )
        response = client.post(f"/api/invite/{result.invitation.id}/accept")
        assert response.status_code == 410
        assert response.json()["error"] == "Invitation has expired"


# =============================================================================
# MEMBERS
# =============================================================================


class TestMembers:
    """Member endpoints."""

    def test_list_members(self, client: TestClient) -> None:
        join(client)
        response = client.get(f"/api/buckets/{BUCKET}/members", params={"email": OWNER})
        assert response.status_code == 200
        assert [m["email"] for m in response.json()["members"]] == ["new@example.com"]

    def test_list_members_requires_email(self, client: TestClient) -> None:
        assert client.get(f"/api/buckets/{BUCKET}/members").status_code == 400

    def test_get_permissions(self, client: TestClient) -> None:
        join(client)
        response = client.get("/api/members/new@example.com/permissions", params={"bucketName": BUCKET})
        assert response.status_code == 200
        assert response.json()["permissions"]["viewOnly"] is True

    def test_update_permissions(self, client: TestClient) -> None:
        join(client)
        response = client.put(
            "/api/members/new@example.com/permissions",
            json={
                "actorEmail": OWNER,
                "bucketName": BUCKET,
                "permissions": {"viewDownload": True},
                "scope": {"type": "specific", "folders": ["pub"]},
            },
        )
        assert response.status_code == 200
        assert response.json()["membership"]["scope"]["folders"] == ["pub"]

    def test_update_requires_owner(self, client: TestClient) -> None:
        join(client)
        response = client.put(
            "/api/members/new@example.com/permissions",
            json={"actorEmail": "new@example.com", "bucketName": BUCKET, "permissions": {}},
        )
        assert response.status_code == 403
        assert response.json()["type"] == "OwnerRequiredError"

    def test_remove_member(self, client: TestClient) -> None:
        join(client)
        response = client.delete(
            "/api/members/new@example.com",
            params={"actorEmail": OWNER, "bucketName": BUCKET},
        )
        assert response.status_code == 200
        missing = client.get("/api/members/new@example.com/permissions", params={"bucketName": BUCKET})
        assert missing.status_code == 404

    def test_member_buckets(self, client: TestClient) -> None:
        join(client)
        response = client.get("/api/member/buckets", params={"email": "new@example.com"})
        assert [m["bucketName"] for m in response.json()["buckets"]] == [BUCKET]

    def test_logs(self, client: TestClient) -> None:
        join(client)
        response = client.get(f"/api/buckets/{BUCKET}/logs", params={"email": OWNER})
        assert response.status_code == 200
        actions = {entry["action"] for entry in response.json()["logs"]}
        assert actions == {"invitation_created", "invitation_accepted"}


# =============================================================================
# LISTING
# =============================================================================


class TestListing:
    """POST /api/buckets/{bucket}/listing."""

    ENTRIES = [{"key": "mit/", "type": "folder"}, {"key": "readme.txt", "type": "file"}]

    def test_member_root_listing(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            f"/api/buckets/{BUCKET}/listing",
            json={"email": "new@example.com", "prefix": "", "entries": self.ENTRIES},
        )
        assert response.status_code == 200
        assert response.json()["entries"] == [{"key": "mit/ai/", "name": "ai", "type": "folder", "virtual": True}]

    def test_outside_folder_forbidden(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            f"/api/buckets/{BUCKET}/listing",
            json={"email": "new@example.com", "prefix": "private/", "entries": []},
        )
        assert response.status_code == 403

    def test_strict_listing_refuses_parent_folder(self, store: InMemorySharingStore) -> None:
        strict = SharingService(store, ShipfileSettings(strict_scope_containment=True))
        strict.register_bucket(BUCKET, OWNER)
        client = TestClient(create_app(service=strict))
        join(client)
        response = client.post(
            f"/api/buckets/{BUCKET}/listing",
            json={"email": "new@example.com", "prefix": "mit/", "entries": self.ENTRIES},
        )
        assert response.status_code == 403


# =============================================================================
# FILES
# =============================================================================


class TestFiles:
    """File ownership and rename endpoints."""

    def upload(self, client: TestClient, email: str, path: str):
        return client.post("/api/files/ownership", json={"bucketName": BUCKET, "ownerEmail": email, "filePath": path})

    def test_record_and_list_owned_files(self, client: TestClient) -> None:
        join(client, permissions={"uploadViewOwn": True})
        assert self.upload(client, "new@example.com", "mit/ai/paper.pdf").json() == {"success": True}

        response = client.get(f"/api/files/ownership/{BUCKET}", params={"userEmail": "new@example.com"})
        assert response.status_code == 200
        assert [f["filePath"] for f in response.json()["files"]] == ["mit/ai/paper.pdf"]

    def test_cannot_overwrite_someone_elses_file(self, client: TestClient) -> None:
        join(client, permissions={"uploadViewOwn": True})
        self.upload(client, OWNER, "mit/ai/owner.pdf")
        response = self.upload(client, "new@example.com", "mit/ai/owner.pdf")
        assert response.status_code == 403
        assert response.json()["denial"] == "ownership_denied"

    def test_delete_own_files_checked_on_authorize(self, client: TestClient) -> None:
        join(client, permissions={"uploadViewOwn": True, "deleteOwnFiles": True})
        self.upload(client, OWNER, "mit/ai/owner.pdf")
        response = client.post(
            "/api/authorize",
            json={
                "email": "new@example.com",
                "bucketName": BUCKET,
                "action": "deleteOwnFiles",
                "paths": ["mit/ai/owner.pdf"],
            },
        )
        assert response.status_code == 403
        assert response.json()["deniedPaths"] == ["mit/ai/owner.pdf"]

    def test_folder_rename_updates_member_scope(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            f"/api/buckets/{BUCKET}/rename",
            json={"actorEmail": OWNER, "oldPath": "mit/ai", "newPath": "mit/ml", "type": "folder"},
        )
        assert response.status_code == 200
        member = client.get("/api/members/new@example.com/permissions", params={"bucketName": BUCKET})
        assert member.json()["scope"]["folders"] == ["mit/ml"]

    def test_viewer_cannot_rename(self, client: TestClient) -> None:
        join(client)
        response = client.post(
            f"/api/buckets/{BUCKET}/rename",
            json={"actorEmail": "new@example.com", "oldPath": "mit/ai", "newPath": "mit/ml", "type": "folder"},
        )
        assert response.status_code == 403
        assert response.json()["denial"] == "capability_denied"
