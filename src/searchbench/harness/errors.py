"""Exceptions raised by the benchmark harness.

Measurement failures (timeouts, refused connections, failing stages) are
recorded as result data and never raised; only configuration problems and
programming errors surface as exceptions.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for harness exceptions."""


class ConfigurationError(HarnessError, ValueError):
    """Run configuration is invalid; raised before any measurement starts."""


class AlreadyFinalizedError(HarnessError, RuntimeError):
    """A result was recorded after the report was finalized."""
