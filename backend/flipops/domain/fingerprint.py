from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str, ensure_ascii=False, separators=(",", ":"))


def fingerprint(*parts: Any) -> str:
    """
    Stable SHA-256 over JSON-serializable parts.

    Used for Event checksums and panel ETags, so key order and whitespace
    must never change the digest.
    """
    blob = canonical_json(parts).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()


def event_checksum(*, deal_id: str | None, actor: str, artifact: str, action: str, diff: Any) -> str:
    return fingerprint(
        {"dealId": deal_id, "actor": actor, "artifact": artifact, "action": action, "diff": diff}
    )


def etag_for(body: Any) -> str:
    return f'"{fingerprint(body)[:32]}"'
