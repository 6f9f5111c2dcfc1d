"""
Packs list: a registry mapping pack ids to their manifests.

Document shape:

    {
      "packs": {
        "<id>": {
          "display_name": "Human readable name",
          "manifest_url": "https://.../manifest.json",
          "manifest_sha": "<sha256 of the manifest's raw text>"
        }
      },
      "featured_pack": "<id>" | null
    }
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aiohttp import ClientSession

from packsync.client import fetch_bytes, fetch_text
from packsync.digest import compute_digest, digests_match, normalize_digest
from packsync.exceptions import (
    FeaturedPackInvalidError,
    FeaturedPackUnspecifiedError,
    ManifestError,
    PackNotFoundError,
    ValidationError,
)
from packsync.log_utils import logger
from packsync.manifest import RemoteDirectory, parse_manifest


@dataclass(frozen=True)
class ManifestMetadata:
    """Where a pack's manifest lives and what its raw text must hash to."""

    display_name: str
    manifest_url: str
    manifest_sha: str

    @classmethod
    def from_dict(cls, data: Any, pack_id: str) -> "ManifestMetadata":
        if not isinstance(data, dict):
            raise ManifestError(f"Pack {pack_id!r} must be an object")
        fields = {}
        for key in ("display_name", "manifest_url", "manifest_sha"):
            value = data.get(key)
            if not isinstance(value, str) or not value:
                raise ManifestError(f"Pack {pack_id!r} is missing {key!r}")
            fields[key] = value
        try:
            fields["manifest_sha"] = normalize_digest(fields["manifest_sha"])
        except ValidationError as e:
            raise ManifestError(
                f"Pack {pack_id!r} has a malformed manifest_sha", details=str(e)
            ) from e
        return cls(**fields)

    async def to_directory(self, session: ClientSession) -> Optional[RemoteDirectory]:
        """
        Fetch this pack's manifest, verify its integrity and parse it.

        Returns:
            Optional[RemoteDirectory]: The manifest, or None if it cannot be
            fetched, its SHA-256 does not match `manifest_sha`, or it is invalid.
        """
        body = await fetch_bytes(session, self.manifest_url)
        if body is None:
            return None

        actual = compute_digest(body)
        if not digests_match(actual, self.manifest_sha):
            logger.error(
                f"Manifest integrity check failed for {self.display_name}: "
                f"expected {self.manifest_sha}, found {actual}"
            )
            return None

        try:
            return parse_manifest(body.decode("utf-8"))
        except (ManifestError, UnicodeDecodeError) as e:
            logger.error(f"Invalid manifest for {self.display_name}: {e}")
            return None


@dataclass(frozen=True)
class PacksList:
    """A set of packs, optionally naming one as featured."""

    packs: Dict[str, ManifestMetadata] = field(default_factory=dict)
    featured_pack: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PacksList":
        """
        Raises:
            ManifestError: If the document does not have the packs list shape.
        """
        if not isinstance(data, dict):
            raise ManifestError("Packs list must be an object")
        raw_packs = data.get("packs")
        if not isinstance(raw_packs, dict):
            raise ManifestError("Packs list must contain a 'packs' object")
        featured = data.get("featured_pack")
        if featured is not None and not isinstance(featured, str):
            raise ManifestError("'featured_pack' must be a string or null")
        packs = {
            str(pack_id): ManifestMetadata.from_dict(entry, str(pack_id))
            for pack_id, entry in raw_packs.items()
        }
        return cls(packs=packs, featured_pack=featured)

    @classmethod
    def from_json(cls, text: str) -> "PacksList":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError("Packs list is not valid JSON", details=str(e)) from e
        return cls.from_dict(data)

    @classmethod
    async def from_url(cls, session: ClientSession, url: str) -> Optional["PacksList"]:
        """
        Fetch a packs list. Only pass trusted (ideally HTTPS) URLs.

        Returns:
            Optional[PacksList]: The packs list, or None if it cannot be fetched
            or parsed (the failure is logged).
        """
        text = await fetch_text(session, url)
        if text is None:
            return None
        try:
            return cls.from_json(text)
        except ManifestError as e:
            logger.error(f"Invalid packs list at {url}: {e}")
            return None

    def get_featured_pack_metadata(self) -> ManifestMetadata:
        """
        Return the metadata of the featured pack.

        Raises:
            FeaturedPackUnspecifiedError: If no featured pack is named.
            FeaturedPackInvalidError: If the named pack is not in `packs`.
        """
        if not self.featured_pack:
            raise FeaturedPackUnspecifiedError("The packs list names no featured pack")
        metadata = self.packs.get(self.featured_pack)
        if metadata is None:
            raise FeaturedPackInvalidError(
                f"Featured pack {self.featured_pack!r} is not in the packs list"
            )
        return metadata

    def get_pack_metadata(self, pack_id: str) -> ManifestMetadata:
        """
        Raises:
            PackNotFoundError: If `pack_id` is not in the packs list.
        """
        metadata = self.packs.get(pack_id)
        if metadata is None:
            raise PackNotFoundError(
                f"Unknown pack {pack_id!r}",
                details=f"available: {', '.join(sorted(self.packs)) or 'none'}",
            )
        return metadata
