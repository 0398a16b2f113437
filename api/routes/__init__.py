"""Route registration helpers."""

from . import (  # noqa: F401
    config,
    events,
    gotw,
    health,
    pickem,
    predictions,
    rankings,
)

__all__ = [
    "config",
    "events",
    "gotw",
    "health",
    "pickem",
    "predictions",
    "rankings",
]
