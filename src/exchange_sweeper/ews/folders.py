"""Logical folder names and their distinguished protocol folder ids."""

from __future__ import annotations

from collections.abc import Iterable

from exchange_sweeper.errors import UnsupportedFolder
from exchange_sweeper.models.results import FolderDescriptor

FOLDER_MAP: dict[str, str] = {
    "inbox": "inbox",
    "junkemail": "junkemail",
    "deleteditems": "deleteditems",
    "sentitems": "sentitems",
    "drafts": "drafts",
    "archive": "archiveroot",
}


def ensure_folder(folder: str) -> FolderDescriptor:
    """Map a folder name (case-insensitive) to its descriptor.

    Args:
        folder: Logical folder name, e.g. ``Inbox`` or ``JunkEmail``.

    Returns:
        Folder descriptor preserving the caller's spelling.

    Raises:
        UnsupportedFolder: If the name has no mapping.
    """
    resolved = FOLDER_MAP.get(folder.strip().lower())
    if resolved is None:
        raise UnsupportedFolder(folder)
    return FolderDescriptor(logical_name=folder.strip(), protocol_folder_id=resolved)


def resolve_folders(
    folders: Iterable[str] | None,
    *,
    defaults: Iterable[str],
) -> list[FolderDescriptor]:
    """Resolve requested folders, falling back to configured defaults.

    Order is preserved; it is the order folders are scanned in.
    """
    requested = [name for name in (folders or []) if name and name.strip()]
    names = requested or list(defaults)
    return [ensure_folder(name) for name in names]
