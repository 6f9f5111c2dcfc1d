# src/packsync/cli.py

import argparse
import asyncio
import importlib.metadata
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from aiohttp import ClientSession
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from packsync import log_utils
from packsync.client import create_session
from packsync.config import (
    fetch_config_from,
    get_config_file,
    get_install_dir,
    get_request_timeout,
    load_config,
    save_config,
)
from packsync.constants import (
    APP_NAME,
    CONFIG_KEY_LOG_DIR,
    CONFIG_KEY_LOG_LEVEL,
    CONFIG_KEY_MANIFEST_URL,
    CONFIG_KEY_PACK,
    CONFIG_KEY_PACKS_URL,
    CONFIG_KEYS,
)
from packsync.exceptions import ConfigurationError, PacksyncError
from packsync.fetch import FetchConfig
from packsync.manifest import RemoteDirectory, build_manifest, fetch_manifest
from packsync.paths import default_game_dir, log_dir
from packsync.progress import ProgressChannel, Total
from packsync.registry import PacksList
from packsync.runner import run_reconciliation

logger = log_utils.logger


def get_packsync_version() -> str:
    try:
        return importlib.metadata.version(APP_NAME)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="packsync - keep a game folder in sync with a remote pack manifest",
    )
    parser.add_argument(
        "--log-level",
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Configuration file to use instead of the default location",
    )
    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser(
        "sync", help="Reconcile the install directory with a pack manifest"
    )
    source_group = sync_parser.add_mutually_exclusive_group()
    source_group.add_argument("--manifest", help="URL of a manifest to apply")
    source_group.add_argument("--packs", help="URL of a packs list")
    sync_parser.add_argument(
        "--pack", help="Pack id from the packs list (default: the featured pack)"
    )
    sync_parser.add_argument(
        "--dir", type=Path, help="Install directory (default: the game directory)"
    )
    sync_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not ask for confirmation before modifying the install directory",
    )

    packs_parser = subparsers.add_parser("packs", help="List the packs in a packs list")
    packs_parser.add_argument("--packs", help="URL of a packs list")

    manifest_parser = subparsers.add_parser(
        "manifest", help="Generate a manifest describing a local directory"
    )
    manifest_parser.add_argument("directory", type=Path, help="Directory to describe")
    manifest_parser.add_argument(
        "--base-url",
        required=True,
        help="URL the directory's contents will be served from",
    )
    manifest_parser.add_argument(
        "--output", "-o", type=Path, help="Write the manifest here instead of stdout"
    )

    config_parser = subparsers.add_parser(
        "config", help="Show the configuration or change one setting"
    )
    config_parser.add_argument("key", nargs="?", help="Setting to show or change")
    config_parser.add_argument(
        "value", nargs="?", help="New value, parsed as YAML (empty clears it)"
    )

    subparsers.add_parser("path", help="Print the default install directory")
    subparsers.add_parser("version", help="Display packsync version")
    return parser


def _configure_logging(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    level = args.log_level or config.get(CONFIG_KEY_LOG_LEVEL)
    if level:
        log_utils.set_log_level(str(level))
    # An explicit empty LOG_DIR turns file logging off
    directory = config.get(CONFIG_KEY_LOG_DIR, log_dir())
    if directory:
        log_utils.add_file_logging(
            Path(str(directory)).expanduser(), str(level or "INFO")
        )


async def _resolve_manifest(
    session: ClientSession,
    manifest_url: Optional[str],
    packs_url: Optional[str],
    pack_id: Optional[str],
) -> Optional[RemoteDirectory]:
    """
    Resolve the manifest to apply: an explicit manifest URL wins, otherwise the
    requested (or featured) pack of a packs list.

    Raises:
        ConfigurationError: If neither a manifest nor a packs list is configured.
        RegistryError: If the requested or featured pack cannot be found.
    """
    if manifest_url:
        logger.info(f"Fetching manifest {manifest_url}")
        return await fetch_manifest(session, manifest_url)

    if not packs_url:
        raise ConfigurationError(
            "No manifest source configured",
            details=f"pass --manifest or --packs, or set {CONFIG_KEY_MANIFEST_URL} "
            f"or {CONFIG_KEY_PACKS_URL} in the configuration",
        )

    packs = await PacksList.from_url(session, packs_url)
    if packs is None:
        return None
    if pack_id:
        metadata = packs.get_pack_metadata(pack_id)
    else:
        metadata = packs.get_featured_pack_metadata()
    logger.info(f"Fetching manifest for {metadata.display_name}")
    return await metadata.to_directory(session)


def _confirm(root: Path) -> bool:
    answer = input(
        f"Files below {root} that are not part of the pack will be deleted. Continue? [y/N] "
    )
    return answer.strip().lower() in ("y", "yes")


async def _render_progress(channel: ProgressChannel, bar: Progress) -> None:
    task_id = bar.add_task("Fetching", total=None)
    async for event in channel:
        if isinstance(event, Total):
            bar.update(task_id, total=event.count)
        else:
            bar.advance(task_id)


async def _reconcile_with_progress(
    session: ClientSession,
    remote: RemoteDirectory,
    root: Path,
    fetch_config: FetchConfig,
) -> int:
    channel = ProgressChannel()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        transient=True,
    ) as bar:
        consumer = asyncio.create_task(_render_progress(channel, bar))
        try:
            return await run_reconciliation(
                remote, root, progress=channel, config=fetch_config, session=session
            )
        finally:
            channel.close()
            await consumer


async def _run_sync(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    manifest_url = args.manifest
    packs_url = args.packs
    pack_id = args.pack
    if not manifest_url and not packs_url:
        manifest_url = config.get(CONFIG_KEY_MANIFEST_URL)
        packs_url = config.get(CONFIG_KEY_PACKS_URL)
        pack_id = pack_id or config.get(CONFIG_KEY_PACK)

    root = args.dir.expanduser() if args.dir else get_install_dir(config)
    if not root.is_dir():
        logger.error(f"Install directory {root} does not exist")
        return 1

    if not args.yes and sys.stdin.isatty() and not _confirm(root):
        logger.info("Aborted.")
        return 1

    fetch_config = fetch_config_from(config)
    async with create_session(
        timeout=get_request_timeout(config),
        connector_limit=fetch_config.max_concurrent,
    ) as session:
        remote = await _resolve_manifest(session, manifest_url, packs_url, pack_id)
        if remote is None:
            logger.error("Could not retrieve a valid manifest")
            return 1
        count = await _reconcile_with_progress(session, remote, root, fetch_config)

    logger.info(f"{root} is up to date ({count} file(s) downloaded)")
    return 0


async def _run_packs(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    packs_url = args.packs or config.get(CONFIG_KEY_PACKS_URL)
    if not packs_url:
        logger.error(f"No packs list URL: pass --packs or set {CONFIG_KEY_PACKS_URL}")
        return 1

    async with create_session(timeout=get_request_timeout(config)) as session:
        packs = await PacksList.from_url(session, packs_url)
    if packs is None:
        return 1
    if not packs.packs:
        logger.info("The packs list is empty")
        return 0
    for pack_id, metadata in sorted(packs.packs.items()):
        marker = " (featured)" if pack_id == packs.featured_pack else ""
        logger.info(f"{pack_id}: {metadata.display_name}{marker}")
    return 0


def _run_manifest(args: argparse.Namespace) -> int:
    directory = args.directory.expanduser()
    if not directory.is_dir():
        logger.error(f"{directory} is not a directory")
        return 1
    manifest = build_manifest(directory, args.base_url)
    document = manifest.to_json()
    if args.output:
        args.output.write_text(document + "\n", encoding="utf-8")
        logger.info(f"Manifest written to {args.output}")
    else:
        print(document)
    return 0


def _run_config(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    config_path = args.config or get_config_file()
    if args.key is None:
        print(f"# {config_path}")
        print(yaml.safe_dump(config, default_flow_style=False, sort_keys=True), end="")
        return 0

    key = args.key.upper()
    if key not in CONFIG_KEYS:
        logger.error(
            f"Unknown setting {args.key}; expected one of {', '.join(CONFIG_KEYS)}"
        )
        return 1
    if args.value is None:
        value = config.get(key)
        print("" if value is None else value)
        return 0

    try:
        value = yaml.safe_load(args.value)
    except yaml.YAMLError:
        value = args.value
    save_config({**config, key: value}, config_path)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the packsync command-line interface.

    Dispatches the sync, packs, manifest, config, path and version subcommands and
    returns the process exit status. Any PacksyncError is logged and turned
    into exit status 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "version":
        logger.info(f"packsync v{get_packsync_version()}")
        return 0
    if args.command == "path":
        print(default_game_dir())
        return 0

    try:
        config = load_config(args.config) or {}
        _configure_logging(args, config)
        if args.command == "manifest":
            return _run_manifest(args)
        if args.command == "config":
            return _run_config(args, config)
        if args.command == "packs":
            return asyncio.run(_run_packs(args, config))
        if args.command == "sync":
            return asyncio.run(_run_sync(args, config))
    except PacksyncError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
