"""Tests for the shipfile exception hierarchy."""

from __future__ import annotations

import pytest

from shipfile.core.exceptions import (
    ConfigException,
    ConflictError,
    DatabaseException,
    InvitationExpiredError,
    NotFoundError,
    OwnerRequiredError,
    ShipfileException,
    ValidationException,
)


class TestExceptions:
    """Tests for exception payloads and status codes."""

    def test_base_to_dict(self) -> None:
        exc = ShipfileException("broken", {"k": "v"})
        assert exc.to_dict() == {"error": "broken", "type": "ShipfileException", "details": {"k": "v"}}
        assert str(exc) == "broken"

    def test_validation_details(self) -> None:
        exc = ValidationException("bad email", field="email", value="nope")
        assert exc.field == "email"
        assert exc.details == {"field": "email", "value": "'nope'"}

    def test_validation_without_field(self) -> None:
        assert ValidationException("bad").details == {}

    def test_not_found_message(self) -> None:
        exc = NotFoundError("Bucket", "research")
        assert exc.message == "Bucket not found: research"
        assert exc.resource_type == "Bucket"
        assert exc.to_dict()["details"] == {"resource_type": "Bucket", "resource_id": "research"}

    def test_owner_required(self) -> None:
        exc = OwnerRequiredError("research", "m@example.com")
        assert "research" in exc.message
        assert exc.details["actor"] == "m@example.com"

    def test_invitation_expired(self) -> None:
        exc = InvitationExpiredError("tok")
        assert exc.token == "tok"
        assert exc.message == "Invitation has expired"

    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (ValidationException("x"), 400),
            (OwnerRequiredError("b", "e@example.com"), 403),
            (NotFoundError("Invitation", "t"), 404),
            (ConflictError("x"), 409),
            (InvitationExpiredError("t"), 410),
            (DatabaseException("x"), 500),
            (ConfigException("x"), 500),
        ],
    )
    def test_status_codes(self, exc: ShipfileException, status: int) -> None:
        assert exc.status_code == status
        assert isinstance(exc, ShipfileException)
