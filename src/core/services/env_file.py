"""
Dotenv helpers — read, rewrite and check the application's ``.env``.

Rewriting is key-based: a key already present is replaced where it
stands (first occurrence), later duplicates of it are dropped, and keys
not present are appended. Re-rendering the same values therefore never
grows the file.
"""

from __future__ import annotations

import re
from pathlib import Path

from src.core.errors import ConfigError, ConfigErrorKind

_LINE_RE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_.]*)\s*=(.*)$")
_SAFE_VALUE_RE = re.compile(r"^[A-Za-z0-9_./:@+,-]*$")


def parse_env(text: str) -> dict[str, str]:
    """Parse dotenv text. The first definition of a key wins."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        m = _LINE_RE.match(line)
        if not m:
            continue
        key = m.group(1)
        if key not in values:
            values[key] = _unquote(m.group(2).strip())
    return values


def read_env_text(env_path: Path) -> str:
    """File contents, or ``ConfigError(UNREADABLE)`` if not UTF-8."""
    try:
        return env_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ConfigError(
            ConfigErrorKind.UNREADABLE,
            f"{env_path} is not valid UTF-8 (byte {e.start}); fix or remove it and re-run",
            path=env_path,
        ) from None


def read_env_values(env_path: Path) -> dict[str, str]:
    """Read raw key=value pairs from a .env file (empty if absent)."""
    if not env_path.is_file():
        return {}
    return parse_env(read_env_text(env_path))


def format_value(value: str) -> str:
    """Quote ``value`` when dotenv would otherwise misread it."""
    if _SAFE_VALUE_RE.match(value):
        return value
    if "'" not in value:
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_env(base: str, updates: dict[str, str]) -> str:
    """Apply ``updates`` to dotenv text ``base`` and return the result."""
    out: list[str] = []
    seen: set[str] = set()
    for line in base.splitlines():
        m = _LINE_RE.match(line)
        if m and m.group(1) in updates:
            key = m.group(1)
            if key in seen:
                continue
            seen.add(key)
            out.append(f"{key}={format_value(updates[key])}")
        else:
            out.append(line)

    missing = [k for k in updates if k not in seen]
    if missing:
        if out and out[-1].strip():
            out.append("")
        out.extend(f"{key}={format_value(updates[key])}" for key in missing)

    return "\n".join(out) + "\n"


def env_problems(text: str) -> list[str]:
    """Syntax problems and duplicate keys, one message each."""
    problems: list[str] = []
    seen: dict[str, int] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        m = _LINE_RE.match(line)
        if not m:
            problems.append(f"line {lineno}: not a KEY=value assignment")
            continue
        key = m.group(1)
        if key in seen:
            problems.append(f"line {lineno}: duplicate key {key} (first on line {seen[key]})")
        else:
            seen[key] = lineno
    return problems


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw[0] == raw[-1] == "'":
        return raw[1:-1]
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        return raw[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    # Unquoted values end at an inline comment
    if " #" in raw:
        raw = raw[: raw.index(" #")]
    return raw.strip()
