from __future__ import annotations


class SpectralStoreError(Exception):
    """Base class for errors raised by spectral_store."""


class FilterValidationError(SpectralStoreError, ValueError):
    """A filter carries contradictory settings and cannot be translated."""


class EndOfSequence(SpectralStoreError, StopIteration):
    """next() was called on an exhausted reading cursor."""


class ConnectionClosedError(SpectralStoreError, RuntimeError):
    """A statement was issued on a DatabaseConnection after close()."""
