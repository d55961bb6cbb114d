"""
Utilities for building valid, collision-free Compose project names.
"""
import re
from datetime import datetime
from typing import Optional

_INVALID_CHARS = re.compile(r'[^a-z0-9\-_]')
_HYPHEN_RUNS = re.compile(r'-+')


def sanitize_project_name(name: str) -> str:
    """
    Converts an arbitrary string into a valid Compose project name:
    lowercase alphanumerics, hyphens and underscores, starting with an alphanumeric.
    """
    sanitized = _INVALID_CHARS.sub("-", name.lower())
    sanitized = _HYPHEN_RUNS.sub("-", sanitized).strip("-")
    if sanitized and not sanitized[0].isalnum():
        sanitized = "test-" + sanitized
    return sanitized or "test-project"


def generate_unique_project_name(base: str, *parts: str, now: Optional[datetime] = None) -> str:
    """
    Builds ``<base>-<parts...>-<HHMMSS>``, sanitized, so stacks started for
    different tests or runs do not share a project namespace.
    """
    timestamp = (now or datetime.now()).strftime("%H%M%S")
    return sanitize_project_name("-".join([base, *[p for p in parts if p], timestamp]))
