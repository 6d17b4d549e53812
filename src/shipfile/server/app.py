"""HTTP API for bucket sharing.

Thin Starlette layer over :class:`~shipfile.sharing.SharingService`. Request
and response bodies use camelCase names. The acting user is named in the
request (``email``, ``inviterEmail``, ``actorEmail``); authenticating that
identity is left to whatever sits in front of this app.

Denials are answered with 403 and ``{"error": reason, "denial": kind}``.
Caller errors map to the ``status_code`` of the raised exception.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .. import __version__
from ..core.config import ShipfileSettings, get_config
from ..core.db import connection_factory
from ..core.exceptions import ShipfileException, ValidationException
from ..permissions import (
    AuthorizationResult,
    ListingEntry,
    PermissionSet,
    ScopeDescriptor,
    describe_permissions,
)
from ..sharing import SharingService
from ..storage import InMemorySharingStore, PostgresSharingStore

logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST HELPERS
# =============================================================================


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationException("Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise ValidationException("Request body must be a JSON object")
    return body


def _required(data: Any, name: str) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationException(f"Missing required field: {name}", field=name)
    return value


def _scope_from(body: dict[str, Any]) -> ScopeDescriptor:
    if "scope" in body:
        scope = body["scope"]
        if scope is not None and not isinstance(scope, dict):
            raise ValidationException("scope must be an object", field="scope")
        return ScopeDescriptor.from_dict(scope)
    return ScopeDescriptor.parse(body.get("scopeType"), body.get("scopeFolders"))


def _service(request: Request) -> SharingService:
    return request.app.state.service


def _denied(decision: AuthorizationResult) -> JSONResponse:
    body: dict[str, Any] = {"error": decision.reason, "denial": decision.denial.value if decision.denial else None}
    if decision.denied_paths:
        body["deniedPaths"] = list(decision.denied_paths)
    return JSONResponse(body, status_code=403)


# =============================================================================
# ENDPOINTS
# =============================================================================


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": __version__})


async def register_bucket(request: Request) -> JSONResponse:
    body = await _json_body(request)
    bucket = await run_in_threadpool(
        _service(request).register_bucket,
        _required(body, "bucketName"),
        _required(body, "ownerEmail"),
        body.get("organizationName"),
    )
    return JSONResponse(bucket.to_dict(), status_code=201)


async def authorize_request(request: Request) -> JSONResponse:
    body = await _json_body(request)
    paths = body.get("paths") or []
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        raise ValidationException("paths must be a list of strings", field="paths")

    decision = await run_in_threadpool(
        _service(request).check_access,
        _required(body, "email"),
        _required(body, "bucketName"),
        _required(body, "action"),
        paths,
    )
    if not decision.allowed:
        return _denied(decision)
    return JSONResponse(decision.to_dict())


async def create_invitation(request: Request) -> JSONResponse:
    body = await _json_body(request)
    result = await run_in_threadpool(
        _service(request).create_invitation,
        _required(body, "inviterEmail"),
        _required(body, "bucketName"),
        _required(body, "email"),
        PermissionSet.from_dict(body.get("permissions")),
        _scope_from(body),
    )
    if result.invitation is None:
        return _denied(result.decision)
    return JSONResponse(
        {
            "success": True,
            "invitation": result.invitation.to_dict(),
            "inviteLink": result.invite_link,
        },
        status_code=201,
    )


async def get_invitation(request: Request) -> JSONResponse:
    invitation = await run_in_threadpool(_service(request).get_invitation, request.path_params["token"])
    data = invitation.to_dict()
    data["permissionsSummary"] = describe_permissions(invitation.permissions)
    return JSONResponse(data)


async def accept_invitation(request: Request) -> JSONResponse:
    membership = await run_in_threadpool(_service(request).accept_invitation, request.path_params["token"])
    return JSONResponse({"success": True, "membership": membership.to_dict()})


async def list_members(request: Request) -> JSONResponse:
    requester = _required(request.query_params, "email")
    members = await run_in_threadpool(
        _service(request).list_members,
        request.path_params["bucket"],
        requester,
    )
    return JSONResponse({"members": [m.to_dict() for m in members]})


async def get_member_permissions(request: Request) -> JSONResponse:
    membership = await run_in_threadpool(
        _service(request).get_membership,
        request.path_params["email"],
        _required(request.query_params, "bucketName"),
    )
    data = membership.to_dict()
    data["permissionsSummary"] = describe_permissions(membership.permissions)
    return JSONResponse(data)


async def update_member_permissions(request: Request) -> JSONResponse:
    body = await _json_body(request)
    membership = await run_in_threadpool(
        _service(request).update_member_permissions,
        _required(body, "actorEmail"),
        _required(body, "bucketName"),
        request.path_params["email"],
        PermissionSet.from_dict(body.get("permissions")),
        _scope_from(body),
    )
    return JSONResponse({"success": True, "membership": membership.to_dict()})


async def remove_member(request: Request) -> JSONResponse:
    await run_in_threadpool(
        _service(request).remove_member,
        _required(request.query_params, "actorEmail"),
        _required(request.query_params, "bucketName"),
        request.path_params["email"],
    )
    return JSONResponse({"success": True})


async def member_buckets(request: Request) -> JSONResponse:
    memberships = await run_in_threadpool(
        _service(request).list_memberships,
        _required(request.query_params, "email"),
    )
    return JSONResponse({"buckets": [m.to_dict() for m in memberships]})


async def activity_logs(request: Request) -> JSONResponse:
    entries = await run_in_threadpool(
        _service(request).activity,
        request.path_params["bucket"],
        _required(request.query_params, "email"),
    )
    return JSONResponse({"logs": [e.to_dict() for e in entries]})


async def visible_listing(request: Request) -> JSONResponse:
    body = await _json_body(request)
    raw_entries = body.get("entries") or []
    if not isinstance(raw_entries, list):
        raise ValidationException("entries must be a list", field="entries")

    entries = []
    for raw in raw_entries:
        if not isinstance(raw, dict):
            raise ValidationException("listing entries must be objects", field="entries")
        entries.append(ListingEntry(path=_required(raw, "key"), is_folder=raw.get("type") == "folder"))

    prefix = body.get("prefix") or ""
    visible = await run_in_threadpool(
        _service(request).visible_listing,
        _required(body, "email"),
        request.path_params["bucket"],
        prefix,
        entries,
    )
    if visible is None:
        return JSONResponse({"error": "Access denied to this folder", "denial": "scope_denied"}, status_code=403)
    return JSONResponse({"prefix": prefix, "entries": [e.to_dict() for e in visible]})


async def record_upload(request: Request) -> JSONResponse:
    body = await _json_body(request)
    decision = await run_in_threadpool(
        _service(request).record_upload,
        _required(body, "ownerEmail"),
        _required(body, "bucketName"),
        _required(body, "filePath"),
    )
    if not decision.allowed:
        return _denied(decision)
    return JSONResponse({"success": True})


async def owned_files(request: Request) -> JSONResponse:
    records = await run_in_threadpool(
        _service(request).owned_files,
        request.path_params["bucket"],
        _required(request.query_params, "userEmail"),
    )
    return JSONResponse({"files": [r.to_dict() for r in records]})


async def rename_path(request: Request) -> JSONResponse:
    body = await _json_body(request)
    decision = await run_in_threadpool(
        _service(request).rename_path,
        _required(body, "actorEmail"),
        request.path_params["bucket"],
        _required(body, "oldPath"),
        _required(body, "newPath"),
        folder=body.get("type") == "folder",
    )
    if not decision.allowed:
        return _denied(decision)
    return JSONResponse({"success": True})


async def handle_shipfile_exception(request: Request, exc: ShipfileException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


# =============================================================================
# APPLICATION
# =============================================================================


def _default_service(settings: ShipfileSettings) -> SharingService:
    if settings.database_url:
        return SharingService(PostgresSharingStore(connection_factory(settings)), settings)
    logger.warning("No database configured, sharing state is kept in memory")
    return SharingService(InMemorySharingStore(), settings)


def create_app(
    service: SharingService | None = None,
    settings: ShipfileSettings | None = None,
) -> Starlette:
    """Build the API application.

    Without an explicit service one is built from settings: a PostgreSQL
    store when a database URL is configured, an in-memory store otherwise.
    """
    settings = settings or (service.settings if service else get_config())
    if service is None:
        service = _default_service(settings)

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/buckets", register_bucket, methods=["POST"]),
        Route("/api/authorize", authorize_request, methods=["POST"]),
        Route("/api/invite", create_invitation, methods=["POST"]),
        Route("/api/invite/{token}", get_invitation, methods=["GET"]),
        Route("/api/invite/{token}/accept", accept_invitation, methods=["POST"]),
        Route("/api/buckets/{bucket}/members", list_members, methods=["GET"]),
        Route("/api/buckets/{bucket}/logs", activity_logs, methods=["GET"]),
        Route("/api/buckets/{bucket}/listing", visible_listing, methods=["POST"]),
        Route("/api/buckets/{bucket}/rename", rename_path, methods=["POST"]),
        Route("/api/files/ownership", record_upload, methods=["POST"]),
        Route("/api/files/ownership/{bucket}", owned_files, methods=["GET"]),
        Route("/api/members/{email}/permissions", get_member_permissions, methods=["GET"]),
        Route("/api/members/{email}/permissions", update_member_permissions, methods=["PUT"]),
        Route("/api/members/{email}", remove_member, methods=["DELETE"]),
        Route("/api/member/buckets", member_buckets, methods=["GET"]),
    ]

    app = Starlette(
        routes=routes,
        exception_handlers={ShipfileException: handle_shipfile_exception},
    )
    app.state.service = service
    app.state.settings = settings
    return app
