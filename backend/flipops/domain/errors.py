from __future__ import annotations


class GuardrailError(Exception):
    """Base failure raised by the read-side core. Mapped to 500 at the HTTP edge."""


class DealNotFound(GuardrailError, LookupError):
    def __init__(self, deal_id: str):
        super().__init__(f"Deal {deal_id} not found")
        self.deal_id = deal_id


class MissingParameter(GuardrailError, ValueError):
    """A required request parameter was absent or blank. Mapped to 422."""

    def __init__(self, field: str):
        super().__init__(f"{field} is required")
        self.field = field
