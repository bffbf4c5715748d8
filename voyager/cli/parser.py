"""Argument parser for the voyager CLI."""

from __future__ import annotations

import argparse

from voyager import __version__
from voyager.cli.handlers import (
    cmd_add,
    cmd_fetch,
    cmd_generate,
    cmd_info,
    cmd_init,
    cmd_list,
    cmd_lock,
    cmd_remove,
    cmd_validate,
)
from voyager.core.config import (
    ASSET_NAME_ENV_VAR,
    CONFIG_PATH_ENV_VAR,
    DEFAULT_ASSET_NAME,
    DEFAULT_CONFIG_PATH,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OUTPUT_PATH,
    MAX_CONCURRENT,
    MAX_CONCURRENT_ENV_VAR,
    MAX_RETRIES,
    MAX_RETRIES_ENV_VAR,
    MIN_CONCURRENT,
    MIN_RETRIES,
    OUTPUT_PATH_ENV_VAR,
    env_str,
)


def _bounded_int(name: str, low: int, high: int):
    def parse(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{name} must be an integer, got '{value}'")
        if not low <= number <= high:
            raise argparse.ArgumentTypeError(f"{name} must be between {low} and {high}, got {number}")
        return number

    return parse


def _add_concurrency_options(parser: argparse.ArgumentParser, what: str) -> None:
    parser.add_argument(
        "--max-concurrent",
        type=_bounded_int("--max-concurrent", MIN_CONCURRENT, MAX_CONCURRENT),
        default=env_str(MAX_CONCURRENT_ENV_VAR, str(DEFAULT_MAX_CONCURRENT)),
        help=f"Maximum concurrent {what} ({MIN_CONCURRENT}-{MAX_CONCURRENT}, or set {MAX_CONCURRENT_ENV_VAR})",
    )
    parser.add_argument(
        "--max-retries",
        type=_bounded_int("--max-retries", MIN_RETRIES, MAX_RETRIES),
        default=env_str(MAX_RETRIES_ENV_VAR, str(DEFAULT_MAX_RETRIES)),
        help=f"Retries for transient failures ({MIN_RETRIES}-{MAX_RETRIES}, or set {MAX_RETRIES_ENV_VAR})",
    )


def _add_token_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--github-token",
        default=None,
        help="GitHub token (or set VOYAGER_GITHUB_TOKEN / GITHUB_TOKEN)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voy",
        description="Build and validate a VPM package index from GitHub release metadata",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        default=env_str(CONFIG_PATH_ENV_VAR, DEFAULT_CONFIG_PATH),
        help=f"Path to the manifest (default: {DEFAULT_CONFIG_PATH}); the lock file sits beside it",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- Pipeline ---
    fetch = subparsers.add_parser("fetch", help="Fetch release metadata into the lock file")
    fetch.add_argument(
        "--asset-name",
        default=env_str(ASSET_NAME_ENV_VAR, DEFAULT_ASSET_NAME),
        help=f"Release asset holding package metadata (default: {DEFAULT_ASSET_NAME})",
    )
    _add_concurrency_options(fetch, "requests")
    _add_token_option(fetch)
    fetch.add_argument("--wipe", action="store_true", help="Discard fetched state and fetch everything again")
    fetch.add_argument(
        "--accept-manifest",
        action="store_true",
        help="Proceed even if the manifest changed since the lock was written",
    )
    fetch.set_defaults(func=cmd_fetch)

    generate = subparsers.add_parser("generate", help="Generate the VPM index from the lock file")
    generate.add_argument(
        "-o",
        "--output",
        default=env_str(OUTPUT_PATH_ENV_VAR, DEFAULT_OUTPUT_PATH),
        help=f"Output path (default: {DEFAULT_OUTPUT_PATH})",
    )
    generate.add_argument(
        "--allow-empty",
        action="store_true",
        help="Write packages without any fetched version instead of failing",
    )
    generate.add_argument(
        "--accept-manifest",
        action="store_true",
        help="Proceed even if the manifest changed since the lock was written",
    )
    generate.set_defaults(func=cmd_generate)

    validate = subparsers.add_parser("validate", help="Check every download URL in an index")
    validate.add_argument("path", nargs="?", default=DEFAULT_OUTPUT_PATH, help="Index file to validate")
    _add_concurrency_options(validate, "URL checks")
    validate.set_defaults(func=cmd_validate)

    lock = subparsers.add_parser("lock", help="Accept manifest changes into the lock file")
    lock.add_argument("--check", action="store_true", help="Only check that the lock matches the manifest")
    lock.add_argument("--no-verify", action="store_true", help="Skip checking that repositories exist")
    _add_token_option(lock)
    lock.set_defaults(func=cmd_lock)

    # --- Manifest ---
    init = subparsers.add_parser("init", help="Create a new manifest")
    init.add_argument("--id", dest="vpm_id", required=True, help="VPM id in reverse-domain form")
    init.add_argument("--name", required=True, help="VPM name")
    init.add_argument("--author", required=True, help="Author name")
    init.add_argument("--url", required=True, help="URL the index.json will be served from")
    init.add_argument("--force", action="store_true", help="Overwrite an existing manifest")
    init.set_defaults(func=cmd_init)

    add = subparsers.add_parser("add", help="Add a package to the manifest")
    add.add_argument("repository", help="GitHub repository (owner/repo)")
    add.add_argument("--id", dest="package_id", help="Package id (inferred from the repository if omitted)")
    add.add_argument("--no-verify", action="store_true", help="Skip checking that the repository exists")
    _add_token_option(add)
    add.set_defaults(func=cmd_add)

    remove = subparsers.add_parser("remove", help="Remove a package from the manifest")
    remove.add_argument("package_id", help="Package id to remove")
    remove.set_defaults(func=cmd_remove)

    list_cmd = subparsers.add_parser("list", help="List packages, or the versions of one package")
    list_cmd.add_argument("package_id", nargs="?", help="Package id to list versions for")
    list_cmd.set_defaults(func=cmd_list)

    info = subparsers.add_parser("info", help="Show details of a package")
    info.add_argument("package_id", help="Package id")
    info.set_defaults(func=cmd_info)

    return parser
