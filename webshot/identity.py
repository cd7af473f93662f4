"""Identifier derivation — groups all captures of one logical target."""

from __future__ import annotations

import hashlib
import re
from typing import Optional

from webshot.errors import ConfigurationError

_LABEL_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def url_hash(url: str) -> str:
    """First 8 hex chars of the md5 of the URL exactly as given."""
    return hashlib.md5(url.encode()).hexdigest()[:8]


def derive_identifier(url: str, label: Optional[str] = None) -> str:
    """Return the caller's label when set, otherwise the URL hash.

    Labels end up in file names, so only letters, digits, dot, dash and
    underscore are accepted.
    """
    if label:
        if not _LABEL_RE.match(label):
            raise ConfigurationError(
                f"Invalid prefix '{label}': use letters, digits, '.', '-' or '_'"
            )
        return label
    return url_hash(url)
