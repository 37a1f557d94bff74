#!/usr/bin/env python3
"""
errors.py — Failure kinds raised by the awsid library.

Every stage raises on its first failure and nothing is retried here.
TransportError is the only kind a caller may reasonably retry; trust,
integrity and signature failures are security rejections and must never be
downgraded.
"""
from __future__ import annotations


class AwsIdError(Exception):
    """Base class. `stage` is filled in by the orchestrator."""
    retryable = False

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage

    @property
    def kind(self) -> str:
        return type(self).__name__


class DecodeError(AwsIdError):
    """Armored-text framing is missing, malformed, or of the wrong type."""


class ParseError(AwsIdError):
    """A correctly framed block does not hold the expected ASN.1 structure."""


class TrustError(AwsIdError):
    """Self-signature failed, or no signer matches the pinned certificate."""


class IntegrityError(AwsIdError):
    """Content digest does not match the signed message digest."""


class SignatureError(AwsIdError):
    """Signature or algorithm check failed."""


class TransportError(AwsIdError):
    """The document could not be retrieved."""
    retryable = True
