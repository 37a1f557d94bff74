#!/usr/bin/env python3
"""
sig_verify.py — Signature checks dispatched on the public key type.

Both the certificate self-signature and the PKCS#7 signer signature go
through `verify_signature`, which raises cryptography's InvalidSignature on a
bad signature and UnsupportedKeyError when the key type cannot be used.
"""
from __future__ import annotations
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding, rsa

# asn1crypto digest names -> cryptography hash classes
HASHES = {
    "md5": hashes.MD5,
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

# signature family -> public key types it can be checked with
KEY_TYPES = {
    "rsassa_pkcs1v15": (rsa.RSAPublicKey,),
    "rsassa_pss": (rsa.RSAPublicKey,),
    "dsa": (dsa.DSAPublicKey,),
    "ecdsa": (ec.EllipticCurvePublicKey,),
    "ed25519": (ed25519.Ed25519PublicKey,),
    "ed448": (ed448.Ed448PublicKey,),
}


class UnsupportedKeyError(ValueError):
    pass


def hash_for(name: str | None) -> hashes.HashAlgorithm:
    cls = HASHES.get(name or "")
    if cls is None:
        raise UnsupportedKeyError(f"unsupported digest algorithm: {name}")
    return cls()


def key_fits(family: str | None, public_key) -> bool:
    return isinstance(public_key, KEY_TYPES.get(family or "", ()))


def verify_signature(public_key, signature: bytes, data: bytes,
                     hash_algorithm: hashes.HashAlgorithm | None,
                     rsa_padding=None) -> None:
    if isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(signature, data, rsa_padding or padding.PKCS1v15(), hash_algorithm)
    elif isinstance(public_key, dsa.DSAPublicKey):
        public_key.verify(signature, data, hash_algorithm)
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        public_key.verify(signature, data, ec.ECDSA(hash_algorithm))
    elif isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        # pure EdDSA, the hash is part of the scheme
        public_key.verify(signature, data)
    else:
        raise UnsupportedKeyError(f"unsupported public key type: {type(public_key).__name__}")


def pss_padding(hash_algorithm: hashes.HashAlgorithm, salt_length: int | None) -> padding.PSS:
    if salt_length is None:
        salt_length = padding.PSS.AUTO
    return padding.PSS(mgf=padding.MGF1(hash_algorithm), salt_length=salt_length)
