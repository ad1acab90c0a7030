import time
import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)


def _format_fields(span):
    return " ".join(f"{key}={value}" for key, value in span.items() if key != "name")


@contextmanager
def trace_span(name: str, **fields):
    """Time a block and log one line when it ends.

    The yielded dict can be filled in by the caller (reply counts, failures);
    those fields appear in the closing log line. Errors are logged and re-raised.
    """
    span = {"name": name, **fields}
    started = time.monotonic()
    logger.debug(f"span {name} started | {_format_fields(span)}")
    try:
        yield span
    except Exception:
        span["elapsed_ms"] = int((time.monotonic() - started) * 1000)
        logger.exception(f"span {name} failed | {_format_fields(span)}")
        raise
    span["elapsed_ms"] = int((time.monotonic() - started) * 1000)
    logger.info(f"span {name} finished | {_format_fields(span)}")
