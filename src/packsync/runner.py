"""
Run coordinator: the entry point for one reconciliation pass.
"""

import asyncio
from pathlib import Path
from typing import Iterable, Optional

import aiohttp

from packsync.client import session_scope
from packsync.exceptions import FileSystemError
from packsync.fetch import FetchConfig
from packsync.log_utils import logger
from packsync.manifest import RemoteDirectory
from packsync.progress import ProgressChannel, Total
from packsync.reconcile import Reconciler, RunState


async def _cancel_all(tasks: Iterable["asyncio.Task[int]"]) -> None:
    """Cancel unfinished tasks and collect the outcome of every task."""
    tasks = list(tasks)
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    # Finished tasks are gathered too so that every failure is retrieved.
    await asyncio.gather(*tasks, return_exceptions=True)
    if pending:
        logger.debug(f"Cancelled {len(pending)} in-flight fetch tasks")


async def run_reconciliation(
    remote: RemoteDirectory,
    root: Path,
    *,
    progress: Optional[ProgressChannel] = None,
    config: Optional[FetchConfig] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> int:
    """
    Make the directory tree at `root` match `remote`.

    Walks the whole tree, spawning a fetch task for every file that is missing
    or stale, then sends one Total event and waits for all fetch tasks. The run
    is all-or-nothing: the first failure (from the walk or from any task)
    cancels the remaining tasks and is raised. On failure the tree may be left
    partially reconciled; a later run picks up from the verified files.

    Parameters:
        remote (RemoteDirectory): Desired state of the tree.
        root (Path): Existing directory the manifest root is anchored to.
            Unknown entries directly inside it are never deleted.
        progress (Optional[ProgressChannel]): Receives Total/Tick events, in no
            particular order. Not closed by this function.
        config (Optional[FetchConfig]): Retry/backoff/concurrency settings.
        session (Optional[aiohttp.ClientSession]): Session to fetch with; a new
            one is created (and closed) when omitted.

    Returns:
        int: Number of files fetched.

    Raises:
        FileSystemError: If `root` is not a directory, or on any local I/O failure.
        FetchError: If a download fails or does not match its digest.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileSystemError("Install directory does not exist", path=str(root))

    config = config or FetchConfig()
    state = RunState(is_root=True, progress=progress)

    async with session_scope(session, connector_limit=config.max_concurrent) as active:
        reconciler = Reconciler(active, config)
        try:
            await reconciler.reconcile_directory(root, remote, state)
        except BaseException:
            await _cancel_all(state.tasks)
            raise

        total = len(state.tasks)
        logger.info(f"{total} file(s) to fetch into {root}")
        if progress is not None:
            progress.send(Total(total))

        try:
            for completed in asyncio.as_completed(state.tasks):
                await completed
        except BaseException:
            await _cancel_all(state.tasks)
            raise

    logger.info(f"Reconciled {root}: fetched {total} file(s)")
    return total


def reconcile(
    remote: RemoteDirectory,
    root: Path,
    *,
    progress: Optional[ProgressChannel] = None,
    config: Optional[FetchConfig] = None,
) -> int:
    """Blocking wrapper around run_reconciliation()."""
    return asyncio.run(
        run_reconciliation(remote, root, progress=progress, config=config)
    )
