"""HTTP helpers for gateway route handlers."""

from fastapi.responses import JSONResponse


def json_or_error_response(resp, error_label: str) -> JSONResponse:
    """Return engine JSON response or a stable gateway error envelope."""
    try:
        payload = resp.json()
    except ValueError:
        payload = {
            "error": error_label,
            "detail": resp.text[:1000],
        }
    return JSONResponse(status_code=resp.status_code, content=payload)


def not_implemented_response(capability: str) -> JSONResponse:
    return JSONResponse(
        status_code=501,
        content={"error": "Not implemented", "detail": f"No {capability} model is configured"},
    )
