"""
Builders for throwaway certificates and PKCS#7 envelopes.

cryptography's PKCS7SignatureBuilder covers the common RSA and EC layouts;
the asn1crypto builders cover DSA (the key type AWS signs with), Ed25519,
multiple signers, subject key identifiers and deliberately broken envelopes.
"""
import base64
import datetime
import pathlib
from collections import namedtuple

import requests

from asn1crypto import algos, cms, core, parser
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.serialization import pkcs7
from cryptography.x509.oid import NameOID

DATA_DIR = pathlib.Path(__file__).parent / "data"

DOCUMENT = b"""{
  "accountId" : "123456789012",
  "architecture" : "x86_64",
  "availabilityZone" : "us-east-1a",
  "imageId" : "ami-0abcdef1234567890",
  "instanceId" : "i-1234567890abcdef0",
  "instanceType" : "t3.micro",
  "pendingTime" : "2026-10-18T09:00:00Z",
  "privateIp" : "10.0.0.12",
  "region" : "us-east-1",
  "version" : "2017-09-30"
}"""

HASHES = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
    "sha512": hashes.SHA512,
}

Signer = namedtuple("Signer", "key cert")


def make_name(cn):
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Metadata Signing"),
        x509.NameAttribute(NameOID.COMMON_NAME, cn),
    ])


def make_cert(key, subject_cn, issuer_cn=None, issuer_key=None, serial=None,
              not_before=None, days=30):
    now = datetime.datetime.now(datetime.timezone.utc)
    not_before = not_before or now - datetime.timedelta(days=1)
    signing_key = issuer_key or key
    hash_algorithm = None if isinstance(signing_key, ed25519.Ed25519PrivateKey) else hashes.SHA256()
    return (
        x509.CertificateBuilder()
        .subject_name(make_name(subject_cn))
        .issuer_name(make_name(issuer_cn or subject_cn))
        .public_key(key.public_key())
        .serial_number(serial or x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + datetime.timedelta(days=days))
        .sign(signing_key, hash_algorithm)
    )


def pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def to_asn1(cert):
    return asn1_x509.Certificate.load(cert.public_bytes(serialization.Encoding.DER))


def strip_armor(der):
    """Base64 body in 64 character lines, as the metadata service serves it."""
    b = base64.b64encode(der)
    return b"\n".join(b[i:i + 64] for i in range(0, len(b), 64))


def b64d(s):
    return base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))


def builder_envelope(signer, content=DOCUMENT, options=()):
    """SignedData produced by cryptography's PKCS#7 builder (RSA and EC only)."""
    return (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(content)
        .add_signer(signer.cert, signer.key, hashes.SHA256())
        .sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.Binary, *options])
    )


def raw_sign(key, data, digest):
    hash_algorithm = HASHES[digest]()
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(data, padding.PKCS1v15(), hash_algorithm)
    if isinstance(key, dsa.DSAPrivateKey):
        return key.sign(data, hash_algorithm)
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return key.sign(data, ec.ECDSA(hash_algorithm))
    return key.sign(data)


def signer_info(signer, content, sig_algo, digest="sha256", signed_attrs=True,
                signing_time=None, sid=None):
    asn1_cert = to_asn1(signer.cert)
    if sid is None:
        sid = cms.SignerIdentifier({
            "issuer_and_serial_number": cms.IssuerAndSerialNumber({
                "issuer": asn1_cert.issuer,
                "serial_number": asn1_cert.serial_number,
            })
        })
    info = {
        "version": "v1" if sid.name == "issuer_and_serial_number" else "v3",
        "sid": sid,
        "digest_algorithm": algos.DigestAlgorithm({"algorithm": digest}),
        "signature_algorithm": algos.SignedDigestAlgorithm({"algorithm": sig_algo}),
    }
    if signed_attrs:
        h = hashes.Hash(HASHES[digest]())
        h.update(content)
        attrs = [
            cms.CMSAttribute({"type": "content_type", "values": ["data"]}),
            cms.CMSAttribute({"type": "message_digest", "values": [h.finalize()]}),
        ]
        if signing_time is not None:
            attrs.append(cms.CMSAttribute({
                "type": "signing_time",
                "values": [signing_time if isinstance(signing_time, core.Asn1Value)
                           else core.UTCTime(signing_time)],
            }))
        to_sign = cms.CMSAttributes(attrs).dump()
        info["signed_attrs"] = attrs
    else:
        to_sign = content
    info["signature"] = raw_sign(signer.key, to_sign, digest)
    return cms.SignerInfo(info)


def assemble(content, infos, certificates=(), digest="sha256"):
    signed_data = {
        "version": "v1",
        "digest_algorithms": [algos.DigestAlgorithm({"algorithm": digest})],
        "encap_content_info": {"content_type": "data", "content": content},
        "signer_infos": list(infos),
    }
    if certificates:
        signed_data["certificates"] = [to_asn1(c) for c in certificates]
    return cms.ContentInfo({
        "content_type": "signed_data",
        "content": cms.SignedData(signed_data),
    }).dump()


def handbuilt_envelope(signer, sig_algo, content=DOCUMENT, certificates=None, **kwargs):
    """SignedData built with asn1crypto, for key types and layouts the builder lacks."""
    if certificates is None:
        certificates = (signer.cert,)
    digest = kwargs.get("digest", "sha256")
    return assemble(content, [signer_info(signer, content, sig_algo, **kwargs)], certificates, digest)


class FakeResponse:
    """Stand-in for requests.Response as returned by the metadata service."""

    def __init__(self, content=b"", status_code=200):
        self.content = content
        self.status_code = status_code

    @property
    def text(self):
        return self.content.decode("utf-8")

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error", response=self)


def _split(tlv):
    header = parser.parse(tlv)[3]
    return tlv[:1], tlv[len(header):]


def _children(contents):
    out = []
    while contents:
        n = parser.peek(contents)
        out.append(contents[:n])
        contents = contents[n:]
    return out


def _indefinite(ident, parts):
    return ident + b"\x80" + b"".join(parts) + b"\x00\x00"


def to_ber(der, chunk=16):
    """
    Re-encodes a DER envelope the way the metadata service serves it:
    indefinite lengths from ContentInfo down to the encapsulated content,
    which becomes a constructed OCTET STRING in `chunk` byte pieces.
    Signer infos and certificates keep their DER encoding.
    """
    ci_ident, ci = _split(der)
    ci_oid, ci_explicit = _children(ci)
    explicit_ident, signed_data = _split(ci_explicit)
    sd_ident, sd = _split(signed_data)
    version, digest_algorithms, encap, *rest = _children(sd)

    ec_ident, ec = _split(encap)
    ec_oid, ec_explicit = _children(ec)
    ece_ident, octets = _split(ec_explicit)
    _, data = _split(octets)
    pieces = [core.OctetString(data[i:i + chunk]).dump() for i in range(0, len(data), chunk)]
    encap = _indefinite(ec_ident, [ec_oid, _indefinite(ece_ident, [_indefinite(b"\x24", pieces)])])

    signed_data = _indefinite(sd_ident, [version, digest_algorithms, encap, *rest])
    return _indefinite(ci_ident, [ci_oid, _indefinite(explicit_ident, [signed_data])])
