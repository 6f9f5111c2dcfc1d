"""
packsync - reconcile a local directory tree with a remote, content-addressed manifest.

Core Components:
- manifest: RemoteDirectory / RemoteFile model and JSON wire format
- registry: packs list and featured pack resolution
- reconcile: recursive tree diff that prunes and spawns fetch tasks
- fetch: download, retry, verify and write one file
- runner: run coordinator (entry point)
- progress: Total/Tick progress channel
"""

from .exceptions import (
    FetchError,
    FileSystemError,
    IntegrityError,
    ManifestError,
    PacksyncError,
)
from .fetch import FetchConfig, FetchTask
from .manifest import RemoteDirectory, RemoteFile, fetch_manifest, parse_manifest
from .progress import ProgressChannel, ProgressEvent, Tick, Total
from .reconcile import Reconciler, RunState
from .registry import ManifestMetadata, PacksList
from .runner import reconcile, run_reconciliation

__all__ = [
    # Model
    "RemoteDirectory",
    "RemoteFile",
    "parse_manifest",
    "fetch_manifest",
    "PacksList",
    "ManifestMetadata",
    # Engine
    "FetchConfig",
    "FetchTask",
    "Reconciler",
    "RunState",
    "run_reconciliation",
    "reconcile",
    # Progress
    "ProgressChannel",
    "ProgressEvent",
    "Total",
    "Tick",
    # Errors
    "PacksyncError",
    "ManifestError",
    "FetchError",
    "IntegrityError",
    "FileSystemError",
]
