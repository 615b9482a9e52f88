from __future__ import annotations

import hashlib


def content_hash(title: str, body: str) -> str:
    """Dedup fingerprint: sha256 of trimmed, lower-cased ``title\\nbody``."""
    normalized = f"{title.strip()}\n{body.strip()}".lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
