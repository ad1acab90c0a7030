import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def _first_message(detail):
    """Reduce DRF error detail (str, list or dict) to one readable message."""
    if isinstance(detail, dict):
        if not detail:
            return ""
        for key in ("message", "error"):
            if key in detail:
                return _first_message(detail[key])
        if "detail" in detail:
            return _first_message(detail["detail"])
        field, value = next(iter(detail.items()))
        message = _first_message(value)
        return message if field == "non_field_errors" else f"{field}: {message}"
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else ""
    return str(detail)


def api_exception_handler(exc, context):
    """Render every API error as ``{"error": message}``.

    Exceptions DRF does not know about become an opaque 500 after being logged.
    """
    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.error(
            f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            exc_info=exc,
        )
        return Response({"error": "Internal server error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    data = response.data
    body = {"error": _first_message(data)}
    if isinstance(data, dict) and "code" in data:
        body["code"] = str(data["code"])
    elif isinstance(data, dict) and not {"detail", "message", "error"} & set(data):
        # Serializer validation errors keep the per-field breakdown.
        body["details"] = data
    response.data = body
    return response
