"""Exception types shared by the analytics core, the contest manager and the API."""

from __future__ import annotations


class ValidationError(ValueError):
    """Malformed identifier or out-of-range input, rejected before any store access."""


class StatsStoreUnavailable(RuntimeError):
    """The statistics store could not be reached or returned an unusable payload."""
