"""
Reading and writing the TOML manifest (voyager.toml).
"""

from __future__ import annotations

import string
import tomllib
from typing import List

from pydantic import ValidationError

from voyager.domain.errors import ManifestValidationError
from voyager.domain.models import Manifest
from voyager.domain.validation import validate_manifest

_LITERAL_CHARS = set(string.digits + string.ascii_letters + "/_-.:@ <>()")


def parse_manifest(text: str) -> Manifest:
    """Parse and validate manifest TOML, raising ManifestValidationError."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ManifestValidationError(f"not valid TOML: {e}") from e

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ManifestValidationError(problems) from e

    validate_manifest(manifest)
    return manifest


def toml_string(text: str) -> str:
    """Quote a string as a TOML basic string."""
    result = ['"']
    for c in text:
        if c in _LITERAL_CHARS:
            result.append(c)
        elif c == '"':
            result.append('\\"')
        elif c == "\\":
            result.append("\\\\")
        elif ord(c) <= 0xFFFF:
            result.append(f"\\u{ord(c):04x}")
        else:
            result.append(f"\\U{ord(c):08x}")
    result.append('"')
    return "".join(result)


def dump_manifest(manifest: Manifest) -> str:
    lines: List[str] = ["[vpm]"]
    for key in ("id", "name", "author", "url"):
        lines.append(f"{key} = {toml_string(getattr(manifest.vpm, key))}")
    for package in manifest.packages:
        lines.append("")
        lines.append("[[packages]]")
        lines.append(f"id = {toml_string(package.id)}")
        lines.append(f"repository = {toml_string(package.repository)}")
    return "\n".join(lines) + "\n"
