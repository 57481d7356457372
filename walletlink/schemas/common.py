from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str = Field(..., json_schema_extra={"example": "E001"})
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorEnvelope(BaseModel):
    """Body of every non-2xx response raised from a WalletLinkException."""

    error: ErrorDetail


def error_responses(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    return {code: {"model": ErrorEnvelope} for code in status_codes}
