"""Ingest error taxonomy and downstream error-parsing utilities."""

import json


class IngestError(Exception):
    """Terminal failure for a single webhook request, rendered as {"error": message}."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class WebhookAuthError(IngestError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class WebhookValidationError(IngestError):
    status_code = 400


class UnsupportedSourceError(WebhookValidationError):
    def __init__(self, source: str):
        super().__init__(f"Unsupported source: {source}")
        self.source = source


class PersistenceError(IngestError):
    """The transactions store rejected or could not complete the insert."""

    status_code = 502


def parse_postgrest_error(response_text: str) -> str:
    """Extract a readable message from a PostgREST error response.

    PostgREST returns JSON like {"code": "23502", "message": "...", "details": "...", "hint": null}.
    Returns "message (details)" when parseable, raw text otherwise.
    """
    try:
        body = json.loads(response_text)
    except ValueError:
        return response_text
    if not isinstance(body, dict):
        return response_text
    msg = body.get("message") or body.get("error") or ""
    details = body.get("details") or ""
    if msg:
        return f"{msg} ({details})" if details else msg
    return response_text
