"""
Tree reconciliation: bring a local directory in line with a RemoteDirectory.

The walk is a single depth-first pass on the event loop. At each level below
the root it deletes entries the manifest does not name, keeps files whose
digest already matches, and spawns one concurrent fetch task per file that is
still missing. The root itself is exempt from deletion because it is usually
a shared folder holding things the manifest knows nothing about; as a
consequence root-level files are always fetched.
"""

import asyncio
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import aiohttp

from packsync.digest import async_file_digest, digests_match
from packsync.exceptions import FileSystemError
from packsync.fetch import FetchConfig, FetchTask
from packsync.log_utils import logger
from packsync.manifest import RemoteDirectory, RemoteFile
from packsync.progress import ProgressChannel


@dataclass
class RunState:
    """Per-run state shared by the reconciler and the fetch tasks it spawns."""

    is_root: bool = True
    """True until the first (root) directory has been visited"""

    tasks: List["asyncio.Task[int]"] = field(default_factory=list)
    """Every fetch task spawned during the run"""

    progress: Optional[ProgressChannel] = None

    failure: Optional[BaseException] = None
    """First exception raised by a fetch task, if any"""

    def track(self, task: "asyncio.Task[int]") -> None:
        self.tasks.append(task)
        task.add_done_callback(self._record_failure)

    def _record_failure(self, task: "asyncio.Task[int]") -> None:
        if task.cancelled() or self.failure is not None:
            return
        self.failure = task.exception()

    def raise_if_failed(self) -> None:
        """Re-raise the first fetch task failure, aborting the walk."""
        if self.failure is not None:
            raise self.failure


class Reconciler:
    """
    Walks a RemoteDirectory against the local filesystem.

    Parameters:
        session (aiohttp.ClientSession): Session used by the spawned fetch tasks.
        config (Optional[FetchConfig]): Retry/backoff settings for fetch tasks.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: Optional[FetchConfig] = None,
    ) -> None:
        self.session = session
        self.config = config or FetchConfig()
        self._semaphore = self.config.make_semaphore()

    async def reconcile_directory(
        self, path: Path, remote: RemoteDirectory, state: RunState
    ) -> None:
        """
        Reconcile `path` (which must exist) with `remote`, recursively.

        Raises:
            FileSystemError: If an entry cannot be listed, hashed, deleted or
                created.
            PacksyncError: The first failure of an already spawned fetch task.
        """
        state.raise_if_failed()
        path = Path(path)
        fetch_set: Dict[str, RemoteFile] = dict(remote.files)

        if state.is_root:
            state.is_root = False
        else:
            await self._prune(path, remote, fetch_set)

        for name in sorted(fetch_set):
            remote_file = fetch_set[name]
            fetch_task = FetchTask(path / name, remote_file.source, remote_file.digest)
            self._spawn(fetch_task, state)

        for name in sorted(remote.children):
            child_path = path / name
            self._ensure_directory(child_path)
            await self.reconcile_directory(child_path, remote.children[name], state)

    async def _prune(
        self, path: Path, remote: RemoteDirectory, fetch_set: Dict[str, RemoteFile]
    ) -> None:
        try:
            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise FileSystemError(
                "Cannot list directory", path=str(path), details=str(e)
            ) from e

        for entry in entries:
            entry_path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if entry.name not in remote.children:
                    self._remove_tree(entry_path)
            elif entry.is_file(follow_symlinks=False):
                remote_file = remote.files.get(entry.name)
                if remote_file is not None:
                    local_digest = await async_file_digest(entry_path)
                    if digests_match(local_digest, remote_file.digest):
                        logger.debug(
                            f"Skipped: {entry.name} (already present & verified)"
                        )
                        fetch_set.pop(entry.name, None)
                        continue
                self._remove_file(entry_path)
            elif entry.is_symlink():
                self._remove_file(entry_path)
            else:
                logger.debug(f"Leaving special file {entry_path} in place")

    def _spawn(self, fetch_task: FetchTask, state: RunState) -> None:
        task = asyncio.create_task(
            fetch_task.run(
                self.session,
                config=self.config,
                progress=state.progress,
                semaphore=self._semaphore,
            ),
            name=f"fetch:{fetch_task.target}",
        )
        state.track(task)

    @staticmethod
    def _ensure_directory(path: Path) -> None:
        try:
            path.mkdir()
        except FileExistsError as e:
            if not path.is_dir():
                raise FileSystemError(
                    "Cannot create directory: a file is in the way",
                    path=str(path),
                    details=str(e),
                ) from e
        except OSError as e:
            raise FileSystemError(
                "Cannot create directory", path=str(path), details=str(e)
            ) from e

    @staticmethod
    def _remove_tree(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise FileSystemError(
                "Cannot remove stale directory", path=str(path), details=str(e)
            ) from e
        logger.info(f"Removed stale directory: {path}")

    @staticmethod
    def _remove_file(path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            raise FileSystemError(
                "Cannot remove stale file", path=str(path), details=str(e)
            ) from e
        logger.info(f"Removed stale file: {path}")

