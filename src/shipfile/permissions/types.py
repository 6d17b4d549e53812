"""Permission flags and scope descriptors.

Both types are immutable values. They are validated once when built from
untrusted input (request bodies, database rows) and trusted afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.exceptions import ValidationException


class Capability(StrEnum):
    """Capability flags a member can hold on a bucket."""

    VIEW_ONLY = "viewOnly"
    VIEW_DOWNLOAD = "viewDownload"
    UPLOAD_ONLY = "uploadOnly"
    UPLOAD_VIEW_OWN = "uploadViewOwn"
    UPLOAD_VIEW_ALL = "uploadViewAll"
    DELETE_FILES = "deleteFiles"
    DELETE_OWN_FILES = "deleteOwnFiles"
    GENERATE_LINKS = "generateLinks"
    CREATE_FOLDER = "createFolder"
    INVITE_MEMBERS = "inviteMembers"


class ScopeType(StrEnum):
    """Whether a grant covers the whole bucket or a folder list."""

    ENTIRE = "entire"
    SPECIFIC = "specific"


def parse_capability(name: str | Capability) -> Capability | None:
    """Resolve a capability name, returning None for unknown names."""
    if isinstance(name, Capability):
        return name
    try:
        return Capability(name)
    except ValueError:
        return None


@dataclass(frozen=True)
class PermissionSet:
    """The set of capabilities granted to a member or an invitation.

    Flags are independent: nothing stops both ``uploadViewOwn`` and
    ``uploadViewAll`` from being set, and each grants its own capability.
    """

    granted: frozenset[Capability] = field(default_factory=frozenset)

    @classmethod
    def of(cls, *capabilities: Capability | str) -> PermissionSet:
        """Build a set from capability names."""
        resolved = set()
        for name in capabilities:
            capability = parse_capability(name)
            if capability is None:
                raise ValidationException(f"Unknown capability: {name}", field="permissions", value=name)
            resolved.add(capability)
        return cls(frozenset(resolved))

    @classmethod
    def everything(cls) -> PermissionSet:
        return cls(frozenset(Capability))

    def has(self, capability: Capability | str) -> bool:
        """Check a capability; unknown names are never granted."""
        resolved = parse_capability(capability)
        return resolved is not None and resolved in self.granted

    def __getitem__(self, capability: Capability | str) -> bool:
        return self.has(capability)

    def __bool__(self) -> bool:
        return bool(self.granted)

    def to_dict(self) -> dict[str, bool]:
        """Serialize with every capability key present."""
        return {capability.value: capability in self.granted for capability in Capability}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str | None) -> PermissionSet:
        """Build from a flag mapping (or its JSON text).

        Missing keys read as false. Unknown keys and non-boolean values are
        rejected.
        """
        if data is None:
            return cls()
        if isinstance(data, str):
            try:
                data = json.loads(data) if data.strip() else {}
            except json.JSONDecodeError as exc:
                raise ValidationException("Permissions are not valid JSON", field="permissions") from exc
        if not isinstance(data, dict):
            raise ValidationException("Permissions must be an object", field="permissions", value=data)

        granted = set()
        for key, value in data.items():
            capability = parse_capability(key)
            if capability is None:
                raise ValidationException(f"Unknown capability: {key}", field="permissions", value=key)
            if not isinstance(value, bool):
                raise ValidationException(
                    f"Capability {key} must be true or false",
                    field=f"permissions.{key}",
                    value=value,
                )
            if value:
                granted.add(capability)
        return cls(frozenset(granted))


def normalize_folder(path: str) -> str:
    """Normalize a folder path: no surrounding slashes, no empty segments."""
    if not isinstance(path, str):
        raise ValidationException("Folder paths must be strings", field="folders", value=path)
    segments = [segment for segment in path.strip().split("/") if segment.strip()]
    return "/".join(segment.strip() for segment in segments)


@dataclass(frozen=True)
class ScopeDescriptor:
    """The folders a grant applies to.

    For ``entire`` scopes the folder list is always empty. For ``specific``
    scopes each folder covers itself and all of its descendants.
    """

    type: ScopeType = ScopeType.ENTIRE
    folders: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        scope_type = ScopeType(self.type)
        object.__setattr__(self, "type", scope_type)
        if scope_type == ScopeType.ENTIRE:
            object.__setattr__(self, "folders", ())
            return

        seen: dict[str, None] = {}
        for raw in self.folders:
            folder = normalize_folder(raw)
            if folder:
                seen.setdefault(folder, None)
        object.__setattr__(self, "folders", tuple(seen))

    @classmethod
    def entire(cls) -> ScopeDescriptor:
        return cls(ScopeType.ENTIRE)

    @classmethod
    def specific(cls, *folders: str) -> ScopeDescriptor:
        return cls(ScopeType.SPECIFIC, tuple(folders))

    @property
    def is_entire(self) -> bool:
        return self.type == ScopeType.ENTIRE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "folders": list(self.folders)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ScopeDescriptor:
        """Build from ``{"type", "folders"}`` or the legacy column pair.

        The legacy form uses ``scope_type``/``scope_folders`` (or the
        camelCase request names), with folders possibly JSON-encoded. A
        missing type reads as ``entire``.
        """
        if not data:
            return cls.entire()

        raw_type = data.get("type", data.get("scope_type", data.get("scopeType")))
        raw_folders = data.get("folders", data.get("scope_folders", data.get("scopeFolders")))
        return cls.parse(raw_type, raw_folders)

    @classmethod
    def parse(cls, raw_type: str | None, raw_folders: Any = None) -> ScopeDescriptor:
        """Build from a type name and a folder list (or its JSON text)."""
        if raw_type is None or raw_type == "":
            return cls.entire()
        try:
            scope_type = ScopeType(raw_type)
        except ValueError as exc:
            raise ValidationException(f"Unknown scope type: {raw_type}", field="scope.type", value=raw_type) from exc

        if scope_type == ScopeType.ENTIRE:
            return cls.entire()

        if raw_folders is None:
            raw_folders = []
        if isinstance(raw_folders, str):
            try:
                raw_folders = json.loads(raw_folders) if raw_folders.strip() else []
            except json.JSONDecodeError as exc:
                raise ValidationException("Scope folders are not valid JSON", field="scope.folders") from exc
        if not isinstance(raw_folders, list | tuple):
            raise ValidationException("Scope folders must be a list", field="scope.folders", value=raw_folders)
        return cls(scope_type, tuple(raw_folders))
