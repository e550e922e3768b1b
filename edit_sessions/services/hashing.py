"""Content hashing for conflict detection."""

from __future__ import annotations

import hashlib


class ContentHasher:
    """Stable digest of byte content. Only used for equality comparisons."""

    def digest(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()
