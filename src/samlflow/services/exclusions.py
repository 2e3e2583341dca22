"""Request paths exempt from login tracking."""

from __future__ import annotations

from collections.abc import Iterable

from samlflow.core.settings import settings


def is_excluded(path: str, prefixes: Iterable[str] | None = None) -> str | None:
    """Return the configured prefix ``path`` falls under, or None."""
    for prefix in settings.excluded_paths if prefixes is None else prefixes:
        prefix = prefix.strip()
        if not prefix:
            continue
        base = prefix.rstrip("/")
        if path == base or path.startswith(base + "/"):
            return prefix
    return None
