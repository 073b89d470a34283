"""Minimal .env support so local runs pick up NEWSLETTER_* settings."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path


def default_env_path() -> Path:
  """Return the .env path at the repository root."""

  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return value


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse `KEY=value` lines, ignoring comments, blanks and malformed entries."""
  parsed: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    # Accept shell-style exports so the same file can be sourced by bash.
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    parsed[key] = _unquote(value.strip())
  return parsed


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Export variables from `path` into the process environment and return the ones applied."""

  if not path.is_file():
    return {}

  applied: dict[str, str] = {}
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    # Real environment variables win unless the caller asks otherwise.
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied[key] = value
  return applied
