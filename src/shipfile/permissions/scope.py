"""Folder scope containment and listing filters.

Every decision on whether a folder lies inside a grant uses one rule,
:func:`_covers`, directly or through :func:`is_contained`. Authorization,
delegation, the listing filter and folder renames all share it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .types import ScopeDescriptor, normalize_folder


def _is_descendant(path: str, ancestor: str) -> bool:
    return path.startswith(ancestor + "/")


def _covers(allowed: str, requested: str, allow_ancestor: bool) -> bool:
    if requested == allowed or _is_descendant(requested, allowed):
        return True
    # A request for a broader folder passes when one of its descendants is
    # granted. This widens the grant, see ShipfileSettings.strict_scope_containment.
    return allow_ancestor and _is_descendant(allowed, requested)


def uncovered_paths(
    requested: Iterable[str],
    allowed: ScopeDescriptor,
    *,
    allow_ancestor: bool = True,
) -> list[str]:
    """Return the requested paths not covered by the allowed scope.

    Paths are returned as given, in request order.
    """
    if allowed.is_entire:
        return []

    missing = []
    for raw in requested:
        path = normalize_folder(raw)
        if not any(_covers(folder, path, allow_ancestor) for folder in allowed.folders):
            missing.append(raw)
    return missing


def is_contained(
    requested: Iterable[str],
    allowed: ScopeDescriptor,
    *,
    allow_ancestor: bool = True,
) -> bool:
    """Check that every requested path lies within the allowed scope.

    An ``entire`` scope contains everything. For a ``specific`` scope a path
    is covered by an allowed folder when it equals it, is below it, or (with
    ``allow_ancestor``) is above it. An empty request is trivially contained.
    """
    return not uncovered_paths(requested, allowed, allow_ancestor=allow_ancestor)


# =============================================================================
# LISTING FILTER
# =============================================================================


@dataclass(frozen=True)
class ListingEntry:
    """One item of a folder listing."""

    path: str
    is_folder: bool = False
    virtual: bool = False

    @property
    def name(self) -> str:
        return normalize_folder(self.path).rsplit("/", 1)[-1]

    def to_dict(self) -> dict:
        return {
            "key": self.path,
            "name": self.name,
            "type": "folder" if self.is_folder else "file",
            "virtual": self.virtual,
        }


def filter_listing(
    scope: ScopeDescriptor,
    prefix: str,
    entries: Sequence[ListingEntry],
    *,
    allow_ancestor: bool = True,
) -> list[ListingEntry] | None:
    """Return the entries of a listing under ``prefix`` that a scope may see.

    Returns None when the prefix is outside the scope entirely.

    At the bucket root a folder-scoped member sees one virtual folder per
    granted folder instead of the real top level. Inside a granted folder
    everything is visible. On the way down to a granted folder only the
    folders leading to it are visible, and only with ``allow_ancestor``.
    """
    if scope.is_entire:
        return list(entries)

    current = normalize_folder(prefix)
    if not current:
        return [ListingEntry(path=folder + "/", is_folder=True, virtual=True) for folder in scope.folders]

    if is_contained([current], scope, allow_ancestor=False):
        return list(entries)

    if not is_contained([current], scope, allow_ancestor=allow_ancestor):
        return None

    visible = []
    for entry in entries:
        if not entry.is_folder:
            continue
        path = normalize_folder(entry.path)
        if any(_covers(path, folder, allow_ancestor=False) for folder in scope.folders):
            visible.append(entry)
    return visible


def rename_in_scope(scope: ScopeDescriptor, old_folder: str, new_folder: str) -> ScopeDescriptor | None:
    """Rewrite a scope after ``old_folder`` was renamed to ``new_folder``.

    Granted folders at or below the old path move with it. Returns None when
    the scope does not mention the old path.
    """
    old = normalize_folder(old_folder)
    new = normalize_folder(new_folder)
    if scope.is_entire or not old:
        return None

    moved = False
    folders = []
    for folder in scope.folders:
        if _covers(old, folder, allow_ancestor=False):
            folders.append(new + folder[len(old):])
            moved = True
        else:
            folders.append(folder)
    return ScopeDescriptor.specific(*folders) if moved else None
