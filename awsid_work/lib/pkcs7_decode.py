#!/usr/bin/env python3
"""
pkcs7_decode.py — Formats and decodes a stripped PKCS#7 signature.

The metadata service serves the SignedData as bare base64 lines with no PEM
header or footer. The body is re-armored as a PKCS7 block, unarmored through
the same decoder as certificates, and parsed into a SignedEnvelope. Nothing
here is trusted yet: embedded certificates are kept only so the verifier can
discard them.
"""
from __future__ import annotations
import sys
import base64
import binascii
from dataclasses import dataclass
from datetime import datetime

from asn1crypto import cms, core
from cryptography import x509

from .common import read_json_stdin, write_json, b64u, to_bytes, error_json
from .errors import AwsIdError, DecodeError, ParseError
from .x509_decode import unarmor

PKCS7_HEADER = b"-----BEGIN PKCS7-----"
PKCS7_FOOTER = b"-----END PKCS7-----"


@dataclass(frozen=True)
class SignerInfo:
    issuer_der: bytes | None
    serial_number: int | None
    digest_algorithm: str
    signature_algorithm: str | None
    signature_hash: str | None
    pss_salt_length: int | None
    signature: bytes
    signed_attrs: bytes | None = None
    message_digest: bytes | None = None
    signing_time: datetime | None = None


@dataclass(frozen=True)
class SignedEnvelope:
    certificates: tuple
    signer_infos: tuple
    content: bytes
    content_type: str = "data"


def armor_pkcs7(raw: bytes) -> bytes:
    return PKCS7_HEADER + b"\n" + raw.strip() + b"\n" + PKCS7_FOOTER


def _check_body(raw: bytes) -> None:
    body = b"".join(raw.split())
    if not body:
        raise DecodeError("empty PKCS7 body")
    try:
        base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise DecodeError(f"PKCS7 body is not base64: {e}") from e


def _attr_value(attr):
    values = attr["values"]
    return values[0].native if len(values) else None


def _signer_info(si: cms.SignerInfo) -> SignerInfo:
    sid = si["sid"]
    issuer, serial = None, None
    if sid.name == "issuer_and_serial_number":
        issuer = sid.chosen["issuer"].dump()
        serial = sid.chosen["serial_number"].native

    sig_alg = si["signature_algorithm"]
    try:
        family = sig_alg.signature_algo
    except ValueError:
        family = None
    try:
        bound_hash = sig_alg.hash_algo
    except ValueError:
        bound_hash = None
    salt = None
    if family == "rsassa_pss":
        salt = sig_alg["parameters"]["salt_length"].native

    signed_attrs = None
    message_digest = None
    signing_time = None
    attrs = si["signed_attrs"]
    if not isinstance(attrs, core.Void):
        # signature covers the attributes re-tagged as a universal SET
        signed_attrs = b"\x31" + attrs.dump()[1:]
        for attr in attrs:
            name = attr["type"].native
            if name == "message_digest":
                message_digest = _attr_value(attr)
            elif name == "signing_time":
                signing_time = _attr_value(attr)
                if signing_time is not None and signing_time.tzinfo is None:
                    raise ParseError("signing time carries no time zone")

    return SignerInfo(
        issuer_der=issuer,
        serial_number=serial,
        digest_algorithm=si["digest_algorithm"]["algorithm"].native,
        signature_algorithm=family,
        signature_hash=bound_hash,
        pss_salt_length=salt,
        signature=si["signature"].native,
        signed_attrs=signed_attrs,
        message_digest=message_digest,
        signing_time=signing_time,
    )


def parse_signed_data(der_bytes: bytes) -> SignedEnvelope:
    try:
        info = cms.ContentInfo.load(der_bytes, strict=True)
        if info["content_type"].native != "signed_data":
            raise ParseError(f"unexpected content type {info['content_type'].native}")
        signed_data = info["content"]

        certificates = []
        choices = signed_data["certificates"]
        if not isinstance(choices, core.Void):
            for choice in choices:
                if choice.name != "certificate":
                    continue
                certificates.append(x509.load_der_x509_certificate(choice.chosen.dump()))

        signer_infos = tuple(_signer_info(si) for si in signed_data["signer_infos"])

        encap = signed_data["encap_content_info"]
        content_type = encap["content_type"].native
        content = None if isinstance(encap["content"], core.Void) else encap["content"].native
    except (ValueError, TypeError, KeyError) as e:
        raise ParseError(f"could not parse PKCS7 signed data: {e}") from e

    if not isinstance(content, bytes):
        raise ParseError("PKCS7 signed data carries no content")

    return SignedEnvelope(
        certificates=tuple(certificates),
        signer_infos=signer_infos,
        content=content,
        content_type=content_type,
    )


def decode_envelope(raw_bytes) -> SignedEnvelope:
    try:
        raw = to_bytes(raw_bytes)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"PKCS7 body is not ASCII: {e}") from e
    _check_body(raw)
    der_bytes = unarmor(armor_pkcs7(raw), "PKCS7")
    return parse_signed_data(der_bytes)


def decode(d: dict) -> dict:
    try:
        env = decode_envelope(d["pkcs7"])
    except AwsIdError as e:
        return error_json(e)
    return {
        "valid": True,
        "content_type": env.content_type,
        "content_b64url": b64u(env.content),
        "embedded_certificates": len(env.certificates),
        "signers": [
            {
                "serial_hex": None if s.serial_number is None else format(s.serial_number, "x"),
                "digest_algorithm": s.digest_algorithm,
                "signature_algorithm": s.signature_algorithm,
                "signed_attrs": s.signed_attrs is not None,
            }
            for s in env.signer_infos
        ],
    }


if __name__ == "__main__":
    try:
        res = decode(read_json_stdin())
        write_json(res)
        sys.exit(0 if res["valid"] else 1)
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
