"""
Application errors. Each one knows the HTTP status it surfaces as; the
handlers in main.py turn them into the response envelope.
"""
from typing import Any, Dict, List, Optional


def describe(errors: List[Dict[str, Any]]) -> str:
    """Flatten pydantic error dicts into one readable line."""
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(AppError):
    """Missing or malformed required input."""
    status_code = 400


class NotFoundError(AppError):
    """Identifier does not resolve to an active record."""
    status_code = 404


class PersistenceError(AppError):
    """The underlying store operation failed."""
    status_code = 500


class RenderError(AppError):
    """Receipt document generation failed."""
    status_code = 500
