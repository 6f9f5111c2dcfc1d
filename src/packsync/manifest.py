"""
Manifest data model for packsync.

A manifest describes the desired state of a directory tree: which files must
exist (each identified by a SHA-256 digest and a source URL) and which
subdirectories, recursively. On the wire it is a JSON document:

    {
      "name": "pack",
      "files": [{"name": "a.txt", "sha": "<sha256 hex>", "url": "https://..."}],
      "children": [{"name": "mods", "files": [...], "children": [...]}]
    }

In memory, files and children are maps keyed by entry name, so names are
unique within a directory by construction.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

from aiohttp import ClientSession

from packsync.client import fetch_text
from packsync.digest import calculate_sha256, normalize_digest
from packsync.exceptions import (
    FileSystemError,
    ManifestError,
    PathValidationError,
    ValidationError,
)
from packsync.log_utils import logger


@dataclass(frozen=True)
class RemoteFile:
    """A file the manifest says should exist."""

    digest: str
    """Lowercase SHA-256 hex digest of the expected content"""

    source: str
    """URL the bytes can be fetched from"""


@dataclass(frozen=True)
class RemoteDirectory:
    """A directory node of the desired-state tree."""

    files: Dict[str, RemoteFile] = field(default_factory=dict)
    """Files directly inside this directory, keyed by file name"""

    children: Dict[str, "RemoteDirectory"] = field(default_factory=dict)
    """Subdirectories, keyed by directory name"""

    name: Optional[str] = None
    """Informational name; the root is anchored to a path by the caller"""

    def file_count(self) -> int:
        """Number of files in this directory and all of its descendants."""
        return len(self.files) + sum(
            child.file_count() for child in self.children.values()
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON wire format, entries sorted by name."""
        return {
            "name": self.name or "",
            "files": [
                {"name": name, "sha": remote.digest, "url": remote.source}
                for name, remote in sorted(self.files.items())
            ],
            "children": [
                dict(child.to_dict(), name=name)
                for name, child in sorted(self.children.items())
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Any, location: str = "/") -> "RemoteDirectory":
        """
        Build a RemoteDirectory from decoded wire-format data.

        Parameters:
            data (Any): Decoded JSON object for one directory node.
            location (str): Manifest path of the node, used in error messages.

        Raises:
            ManifestError: If the node is malformed, contains duplicate or unsafe
                names, or declares a malformed digest.
        """
        if not isinstance(data, dict):
            raise ManifestError(
                f"Directory entry at {location} must be an object",
                details=f"got {type(data).__name__}",
            )

        name = data.get("name")
        if name is not None and not isinstance(name, str):
            raise ManifestError(f"Directory name at {location} must be a string")

        raw_files = data.get("files", [])
        raw_children = data.get("children", [])
        if not isinstance(raw_files, list):
            raise ManifestError(f"'files' at {location} must be a list")
        if not isinstance(raw_children, list):
            raise ManifestError(f"'children' at {location} must be a list")

        files: Dict[str, RemoteFile] = {}
        for index, entry in enumerate(raw_files):
            entry_location = f"{location}files[{index}]"
            if not isinstance(entry, dict):
                raise ManifestError(f"File entry {entry_location} must be an object")
            file_name = _checked_name(entry.get("name"), entry_location)
            if file_name in files:
                raise ManifestError(
                    f"Duplicate file name {file_name!r} in {location}"
                )
            source = entry.get("url")
            if not isinstance(source, str) or not source.strip():
                raise ManifestError(f"File {location}{file_name} has no source url")
            try:
                digest = normalize_digest(entry.get("sha"))
            except ValidationError as e:
                raise ManifestError(
                    f"File {location}{file_name} has a malformed digest",
                    details=str(e),
                ) from e
            files[file_name] = RemoteFile(digest=digest, source=source.strip())

        children: Dict[str, RemoteDirectory] = {}
        for index, entry in enumerate(raw_children):
            entry_location = f"{location}children[{index}]"
            if not isinstance(entry, dict):
                raise ManifestError(
                    f"Directory entry {entry_location} must be an object"
                )
            child_name = _checked_name(entry.get("name"), entry_location)
            if child_name in children or child_name in files:
                raise ManifestError(
                    f"Duplicate entry name {child_name!r} in {location}"
                )
            children[child_name] = cls.from_dict(entry, f"{location}{child_name}/")

        return cls(files=files, children=children, name=name)

    @classmethod
    async def from_url(
        cls, session: ClientSession, url: str
    ) -> Optional["RemoteDirectory"]:
        """Fetch and parse a manifest; see fetch_manifest()."""
        return await fetch_manifest(session, url)


def validate_entry_name(name: Any) -> str:
    """
    Ensure a manifest entry name is a single, safe path component.

    Raises:
        PathValidationError: If the name is empty, `.`/`..`, or contains a
            path separator or NUL byte.
    """
    if not isinstance(name, str) or not name:
        raise PathValidationError(
            "Entry name must be a non-empty string", "name", repr(name)
        )
    if name in (".", "..") or any(sep in name for sep in ("/", "\\", "\x00")):
        raise PathValidationError("Unsafe entry name", "name", name)
    return name


def _checked_name(name: Any, location: str) -> str:
    try:
        return validate_entry_name(name)
    except ValidationError as e:
        raise ManifestError(f"Invalid name at {location}", details=str(e)) from e


def parse_manifest(text: str) -> RemoteDirectory:
    """
    Parse a manifest JSON document.

    Raises:
        ManifestError: If the text is not valid JSON or not a valid manifest.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestError("Manifest is not valid JSON", details=str(e)) from e
    return RemoteDirectory.from_dict(data)


async def fetch_manifest(session: ClientSession, url: str) -> Optional[RemoteDirectory]:
    """
    Fetch a manifest from `url` and parse it.

    Only pass trusted URLs (ideally HTTPS): the manifest decides what gets
    deleted and downloaded.

    Returns:
        Optional[RemoteDirectory]: The parsed manifest, or None when it cannot
        be fetched or parsed (the failure is logged).
    """
    text = await fetch_text(session, url)
    if text is None:
        return None
    try:
        return parse_manifest(text)
    except ManifestError as e:
        logger.error(f"Invalid manifest at {url}: {e}")
        return None


def build_manifest(root: Path, base_url: str) -> RemoteDirectory:
    """
    Describe a local directory tree as a manifest.

    Each file's source URL is `base_url` joined with its URL-quoted path
    relative to `root`. Symlinks and special files are not included.

    Raises:
        FileSystemError: If a directory cannot be listed or a file cannot be
            read for hashing.
    """
    root = Path(root)
    prefix = base_url.rstrip("/")

    def _walk(directory: Path, relative: str) -> RemoteDirectory:
        files: Dict[str, RemoteFile] = {}
        children: Dict[str, RemoteDirectory] = {}
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise FileSystemError(
                "Cannot list directory", path=str(directory), details=str(e)
            ) from e
        for entry in entries:
            rel_path = f"{relative}{entry.name}"
            if entry.is_dir(follow_symlinks=False):
                children[entry.name] = _walk(Path(entry.path), f"{rel_path}/")
            elif entry.is_file(follow_symlinks=False):
                files[entry.name] = RemoteFile(
                    digest=calculate_sha256(entry.path),
                    source=f"{prefix}/{quote(rel_path)}",
                )
            else:
                logger.debug(f"Not adding {rel_path} to manifest: not a regular file")
        return RemoteDirectory(files=files, children=children, name=directory.name)

    manifest = _walk(root, "")
    logger.info(f"Built manifest for {root} with {manifest.file_count()} files")
    return manifest
