#!/usr/bin/env python3
"""
x509_decode.py — Decodes a PEM certificate and asserts it is self-signed.

The pinned anchor is only trusted because it verifies under its own key, so a
certificate that parses but was signed by someone else is rejected with
TrustError, never returned.
"""
from __future__ import annotations
import sys

from asn1crypto import pem
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from .common import read_json_stdin, write_json, to_bytes, error_json
from .errors import AwsIdError, DecodeError, ParseError, TrustError
from .sig_verify import UnsupportedKeyError, verify_signature


def unarmor(pem_bytes, expected_type: str) -> bytes:
    """Returns the payload of the first PEM block, which must be `expected_type`."""
    try:
        data = to_bytes(pem_bytes)
        type_name, _headers, der_bytes = pem.unarmor(data)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"could not decode PEM block: {e}") from e
    if type_name != expected_type:
        raise DecodeError(f"could not decode PEM block type {type_name}")
    if not der_bytes:
        raise DecodeError(f"empty PEM block type {type_name}")
    return der_bytes


def check_self_signed(cert: x509.Certificate) -> None:
    try:
        public_key = cert.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise ParseError(f"unsupported certificate public key: {e}") from e
    try:
        hash_algorithm = cert.signature_hash_algorithm
        params = cert.signature_algorithm_parameters
        verify_signature(
            public_key,
            cert.signature,
            cert.tbs_certificate_bytes,
            hash_algorithm,
            rsa_padding=params if isinstance(params, (padding.PSS, padding.PKCS1v15)) else None,
        )
    except (InvalidSignature, UnsupportedAlgorithm, UnsupportedKeyError, ValueError, TypeError) as e:
        raise TrustError(f"couldn't verify self-signed certificate: {e or 'invalid signature'}") from e


def decode_certificate(pem_bytes) -> x509.Certificate:
    der_bytes = unarmor(pem_bytes, "CERTIFICATE")
    try:
        cert = x509.load_der_x509_certificate(der_bytes)
    except ValueError as e:
        raise ParseError(f"could not parse certificate: {e}") from e
    check_self_signed(cert)
    return cert


def issuer_der(cert: x509.Certificate) -> bytes:
    """Exact DER of the issuer name, as it appears in the certificate."""
    der = cert.public_bytes(serialization.Encoding.DER)
    return asn1_x509.Certificate.load(der)["tbs_certificate"]["issuer"].dump()


def fingerprint_hex(cert: x509.Certificate) -> str:
    return cert.fingerprint(hashes.SHA256()).hex()


def describe(cert: x509.Certificate) -> dict:
    return {
        "subject": cert.subject.rfc4514_string(),
        "issuer": cert.issuer.rfc4514_string(),
        "serial_hex": format(cert.serial_number, "x"),
        "sha256_fingerprint": fingerprint_hex(cert),
        "not_before": cert.not_valid_before_utc.isoformat(),
        "not_after": cert.not_valid_after_utc.isoformat(),
    }


def decode(d: dict) -> dict:
    try:
        cert = decode_certificate(d["cert_pem"])
    except AwsIdError as e:
        return error_json(e)
    return {"valid": True, **describe(cert)}


if __name__ == "__main__":
    try:
        res = decode(read_json_stdin())
        write_json(res)
        sys.exit(0 if res["valid"] else 1)
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
