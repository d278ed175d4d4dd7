"""
Common schema types used across the API.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    detail: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    errors: Optional[List[Dict[str, Any]]] = None  # field errors on 422
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"] = "ok"
    version: str
    database: Literal["connected", "unavailable"] = "connected"
