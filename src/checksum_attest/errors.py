"""Error taxonomy for manifest generation and verification.

Every failure the tools can report is one of these. The CLI maps all of them
to exit code 1; the kind only changes the message.
"""
from __future__ import annotations

from typing import Any


class ChecksumError(Exception):
    """Base class for all checksum_attest failures."""


class ConfigurationError(ChecksumError):
    """Bad flag, named-but-empty key variable, malformed config file."""


class PreconditionError(ChecksumError):
    """A required file or key is missing before any real work starts."""

    def __init__(self, message: str, remediation: str | None = None):
        super().__init__(message)
        self.remediation = remediation


class CryptoError(ChecksumError):
    """Signing failed, or a signature did not verify."""


class IntegrityError(ChecksumError):
    """One or more manifest entries no longer match the workspace."""

    def __init__(self, message: str, failures: list[Any] | None = None):
        super().__init__(message)
        self.failures = failures or []
