"""Scoped log context for control-loop iterations."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog


@contextmanager
def log_context(**kwargs: object) -> Iterator[None]:
    """Attach key-value pairs to every record logged inside the block.

    Values are task-local and are restored on exit, even if the block raises.
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
