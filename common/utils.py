"""Shared utility functions used across all apps."""

import logging
import secrets
import time
import uuid
from contextlib import contextmanager


def uuid7():
    """Return a time-ordered UUID (RFC 9562 version 7).

    The first 48 bits hold the Unix time in milliseconds, so primary keys
    sort by creation time.
    """
    millis = time.time_ns() // 1_000_000
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)
    value = (millis & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= rand_a << 64
    value |= 0b10 << 62
    value |= rand_b
    return uuid.UUID(int=value)


def random_token(nbytes=6):
    """Return a short lowercase hex token (``2 * nbytes`` characters)."""
    return secrets.token_hex(nbytes)


@contextmanager
def safe_dispatch(operation_name, logger=None):
    """
    Context manager for side-effects that must never break the caller.

    Usage::

        with safe_dispatch("dispatch outbox delivery", logger):
            deliver_outbox_events_task.delay()
    """
    _logger = logger or logging.getLogger("guestsnap.dispatch")
    try:
        yield
    except Exception as e:
        _logger.error("Failed to %s: %s", operation_name, e)
