#!/usr/bin/env python3
"""
pkcs7_verify.py — Verifies a SignedEnvelope against the pinned certificate.

No matter what certificates the PKCS#7 blob carries, only the supplied
anchor is used: the envelope's certificate set is overwritten with exactly
one entry before any signer is resolved. Appending the anchor instead would
let an attacker who controls the fetched bytes supply their own signer.

Every signer-info must verify; the first failure aborts the whole check.
"""
from __future__ import annotations
import sys
from dataclasses import replace

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes

from .anchor import load_pinned_anchor
from .common import read_json_stdin, write_json, b64u, ct_eq, error_json
from .errors import AwsIdError, IntegrityError, SignatureError, TrustError
from .pkcs7_decode import SignedEnvelope, SignerInfo, decode_envelope
from .sig_verify import UnsupportedKeyError, hash_for, key_fits, pss_padding, verify_signature
from .x509_decode import decode_certificate, issuer_der


def substitute_anchor(envelope: SignedEnvelope, anchor: x509.Certificate) -> SignedEnvelope:
    return replace(envelope, certificates=(anchor,))


def resolve_signer(signer: SignerInfo, certificates) -> x509.Certificate:
    if signer.issuer_der is None:
        raise TrustError("signer is not identified by issuer and serial number")
    for cert in certificates:
        if cert.serial_number == signer.serial_number and issuer_der(cert) == signer.issuer_der:
            return cert
    raise TrustError(f"no certificate for signer with serial {signer.serial_number:x}")


def content_digest(content: bytes, hash_algorithm: hashes.HashAlgorithm) -> bytes:
    h = hashes.Hash(hash_algorithm)
    h.update(content)
    return h.finalize()


def verify_signer(signer: SignerInfo, cert: x509.Certificate, content: bytes) -> None:
    try:
        hash_algorithm = hash_for(signer.digest_algorithm)
    except UnsupportedKeyError as e:
        raise SignatureError(str(e)) from e

    public_key = cert.public_key()
    if not key_fits(signer.signature_algorithm, public_key):
        raise SignatureError(
            f"signature algorithm {signer.signature_algorithm} does not fit the "
            f"{type(public_key).__name__} of the pinned certificate")
    if (signer.signature_hash is not None
            and signer.signature_algorithm not in ("ed25519", "ed448")
            and signer.signature_hash != signer.digest_algorithm):
        raise SignatureError(
            f"signature hash {signer.signature_hash} disagrees with digest {signer.digest_algorithm}")

    if signer.signed_attrs is not None:
        if signer.message_digest is None:
            raise IntegrityError("signed attributes carry no message digest")
        if not ct_eq(content_digest(content, hash_algorithm), signer.message_digest):
            raise IntegrityError("message digest mismatch")
        if signer.signing_time is not None:
            if not cert.not_valid_before_utc <= signer.signing_time <= cert.not_valid_after_utc:
                raise TrustError(
                    f"signing time {signer.signing_time.isoformat()} is outside of certificate validity")
        signed_bytes = signer.signed_attrs
    else:
        signed_bytes = content

    rsa_padding = None
    if signer.signature_algorithm == "rsassa_pss":
        rsa_padding = pss_padding(hash_algorithm, signer.pss_salt_length)
    try:
        verify_signature(public_key, signer.signature, signed_bytes, hash_algorithm, rsa_padding=rsa_padding)
    except InvalidSignature as e:
        raise SignatureError("signature verification failed") from e
    except (UnsupportedAlgorithm, UnsupportedKeyError, ValueError, TypeError) as e:
        raise SignatureError(f"signature could not be checked: {e}") from e


def verify(envelope: SignedEnvelope, anchor: x509.Certificate) -> bytes:
    trusted = substitute_anchor(envelope, anchor)
    if not trusted.signer_infos:
        raise TrustError("PKCS7 message has no signers")
    for signer in trusted.signer_infos:
        cert = resolve_signer(signer, trusted.certificates)
        verify_signer(signer, cert, trusted.content)
    return trusted.content


def verify_json(d: dict) -> dict:
    try:
        if d.get("anchor_pem"):
            anchor = decode_certificate(d["anchor_pem"])
        else:
            anchor = load_pinned_anchor()
        content = verify(decode_envelope(d["pkcs7"]), anchor)
    except AwsIdError as e:
        return error_json(e)
    return {"valid": True, "content_b64url": b64u(content)}


if __name__ == "__main__":
    try:
        res = verify_json(read_json_stdin())
        write_json(res)
        sys.exit(0 if res["valid"] else 1)
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
