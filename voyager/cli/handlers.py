"""
Command handlers: turn parsed arguments into settings, run the command, and
print a summary. Each returns the process exit code.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from voyager.commands import manifest as manifest_commands
from voyager.commands import pipeline
from voyager.core.config import FetchSettings, GenerateSettings, ValidateSettings, github_token_from_env
from voyager.core.dependencies import build_http_client, build_release_source, build_store
from voyager.domain.errors import EXIT_FAILURE, EXIT_OK
from voyager.domain.models import FetchReport
from voyager.services.ledger import LockStatus
from voyager.services.url_validator import summarize

logger = logging.getLogger(__name__)


def _store(args: argparse.Namespace):
    return build_store(Path(args.config))


def _token(args: argparse.Namespace) -> Optional[str]:
    return args.github_token or github_token_from_env()


def _say(args: argparse.Namespace, message: str) -> None:
    if not getattr(args, "quiet", False):
        print(message)


def _print_fetch_report(args: argparse.Namespace, report: FetchReport) -> None:
    for summary in report.packages:
        _say(args, f"{summary.package_id}: {summary.existing} existing, {summary.new} new, {summary.failed} failed")
    for skipped in report.skipped:
        _say(args, f"  skipped {skipped.package_id} {skipped.tag}: {skipped.message}")
    for failure in report.failures:
        where = f"{failure.package_id} {failure.tag}" if failure.tag else failure.package_id
        print(f"  failed {where}: {failure.kind}: {failure.message}")
    for package_id in report.empty_packages:
        print(f"  warning: {package_id} has no versions")


# ---------------------------------------------------------------------------
# Pipeline commands
# ---------------------------------------------------------------------------


def cmd_fetch(args: argparse.Namespace) -> int:
    settings = FetchSettings(
        asset_name=args.asset_name,
        max_concurrent=args.max_concurrent,
        max_retries=args.max_retries,
        wipe=args.wipe,
    )

    async def run() -> FetchReport:
        async with build_http_client() as client:
            source = build_release_source(client, token=_token(args))
            return await pipeline.run_fetch(_store(args), source, settings, accept_manifest=args.accept_manifest)

    report = asyncio.run(run())
    _print_fetch_report(args, report)
    if not report.ok:
        print("fetch finished with failures; successful releases were saved")
        return EXIT_FAILURE
    _say(args, "Lock file updated")
    return EXIT_OK


def cmd_generate(args: argparse.Namespace) -> int:
    settings = GenerateSettings(output_path=Path(args.output), allow_empty=args.allow_empty)
    output = asyncio.run(pipeline.run_generate(_store(args), settings, accept_manifest=args.accept_manifest))
    _say(args, f"Generated {output}")
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    settings = ValidateSettings(max_concurrent=args.max_concurrent, max_retries=args.max_retries)

    async def run():
        async with build_http_client(timeout=settings.timeout) as client:
            return await pipeline.run_validate(_store(args), client, Path(args.path), settings)

    report = asyncio.run(run())
    for line in summarize(report):
        print(line)
    return EXIT_OK if report.ok else EXIT_FAILURE


def cmd_lock(args: argparse.Namespace) -> int:
    async def run() -> LockStatus:
        if args.check or args.no_verify:
            return await pipeline.run_lock(_store(args), check_only=args.check)
        async with build_http_client() as client:
            source = build_release_source(client, token=_token(args))
            return await pipeline.run_lock(_store(args), source=source)

    status = asyncio.run(run())
    if args.check:
        _say(args, "Manifest hash matches lock file")
    elif status is LockStatus.CONSISTENT:
        _say(args, "Lock file is already up to date")
    else:
        _say(args, "Updated manifest hash in lock file")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Manifest commands
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    store = _store(args)
    asyncio.run(
        manifest_commands.init_manifest(
            store,
            vpm_id=args.vpm_id,
            name=args.name,
            author=args.author,
            url=args.url,
            force=args.force,
        )
    )
    _say(args, f"Created {store.paths.manifest_path}")
    _say(args, "Next: voy add <owner/repo>")
    return EXIT_OK


def cmd_add(args: argparse.Namespace) -> int:
    async def run():
        if args.no_verify:
            return await manifest_commands.add_package(_store(args), args.repository, args.package_id)
        async with build_http_client() as client:
            source = build_release_source(client, token=_token(args))
            return await manifest_commands.add_package(
                _store(args), args.repository, args.package_id, source=source
            )

    entry = asyncio.run(run())
    _say(args, f"Added {entry.id} ({entry.repository})")
    _say(args, "Next: voy fetch")
    return EXIT_OK


def cmd_remove(args: argparse.Namespace) -> int:
    entry = asyncio.run(manifest_commands.remove_package(_store(args), args.package_id))
    _say(args, f"Removed {entry.id} ({entry.repository})")
    return EXIT_OK


def cmd_list(args: argparse.Namespace) -> int:
    store = _store(args)
    if args.package_id:
        entry, records = asyncio.run(manifest_commands.package_versions(store, args.package_id))
        print(f"{entry.id} ({entry.repository})")
        if not records:
            print("  no versions fetched; run 'voy fetch'")
        for record in records:
            print(f"  {record.version}  {record.tag}")
        return EXIT_OK

    packages = asyncio.run(manifest_commands.list_packages(store))
    if not packages:
        print("No packages configured; run 'voy add <owner/repo>'")
    for entry, count in packages:
        print(f"{entry.id}  {entry.repository}  {count} versions")
    return EXIT_OK


def cmd_info(args: argparse.Namespace) -> int:
    entry, records = asyncio.run(manifest_commands.package_versions(_store(args), args.package_id))
    print(entry.id)
    print(f"  Repository:   {entry.repository}")
    print(f"  Versions:     {len(records)}")
    if not records:
        print("  no versions fetched; run 'voy fetch'")
        return EXIT_OK

    latest = records[0]
    metadata = latest.metadata
    print(f"  Display Name: {metadata.display_name}")
    print(f"  Latest:       {latest.version} ({latest.tag})")
    if metadata.unity:
        print(f"  Unity:        {metadata.unity}")
    if metadata.description:
        print(f"  Description:  {metadata.description}")
    print(f"  Author:       {metadata.author.name}")
    if metadata.license:
        print(f"  License:      {metadata.license}")
    for name, version_range in (metadata.vpm_dependencies or {}).items():
        print(f"  Depends on:   {name} {version_range}")
    return EXIT_OK
