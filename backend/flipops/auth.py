# backend/flipops/auth.py
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from .config import settings

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    user_id: str
    via: str  # api_key | dev
    forwarded: bool = False  # identity came from the dev user header


def _api_key_ok(raw: str) -> bool:
    expected = settings.flipops_api_key or ""
    if not expected:
        return False
    return hmac.compare_digest(raw.encode(), expected.encode())


# -------------------------
# get_principal
# -------------------------
def get_principal(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> Principal:
    """
    Auth modes (in priority order):
      1) X-API-Key (workflow engine, dashboards)
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    """
    user_hint = (request.headers.get(settings.dev_header_user_id) or "").strip()

    if x_api_key:
        if not _api_key_ok(str(x_api_key).strip()):
            log.warning("rejected api key")
            raise HTTPException(status_code=401, detail="Invalid API key")
        return Principal(user_id=user_hint or "service", via="api_key")

    if settings.auth_mode == "dev":
        return Principal(user_id=user_hint or settings.dev_default_user_id, via="dev", forwarded=bool(user_hint))

    raise HTTPException(status_code=401, detail="Not authenticated")


def tenant_for(p: Principal, requested: Optional[str] = None) -> Optional[str]:
    """
    A forwarded dev identity pins the tenant. Service keys and the anonymous
    dev user may narrow with ?userId, or read across tenants without it.
    """
    if p.via == "dev" and p.forwarded:
        return p.user_id
    return (requested or "").strip() or None
