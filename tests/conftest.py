"""
Shared fixtures: throwaway signers minted once per session. Nothing here
touches the network; the metadata service is replaced by monkeypatching
`requests` in the tests that need it.
"""
import pytest
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, rsa

from envelopes import DATA_DIR, Signer, make_cert


@pytest.fixture(scope="session")
def rsa_signer():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return Signer(key, make_cert(key, "metadata-signer-rsa", serial=0x96BA48D9E55E1A67))


@pytest.fixture(scope="session")
def ec_signer():
    key = ec.generate_private_key(ec.SECP256R1())
    return Signer(key, make_cert(key, "metadata-signer-ec"))


@pytest.fixture(scope="session")
def dsa_signer():
    key = dsa.generate_private_key(key_size=2048)
    return Signer(key, make_cert(key, "metadata-signer-dsa"))


@pytest.fixture(scope="session")
def ed25519_signer():
    key = ed25519.Ed25519PrivateKey.generate()
    return Signer(key, make_cert(key, "metadata-signer-ed25519"))


@pytest.fixture(scope="session")
def attacker():
    key = ec.generate_private_key(ec.SECP256R1())
    return Signer(key, make_cert(key, "attacker"))


@pytest.fixture(scope="session")
def impostor(rsa_signer):
    """Same subject, issuer and serial as rsa_signer, different key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return Signer(key, make_cert(key, "metadata-signer-rsa", serial=rsa_signer.cert.serial_number))


@pytest.fixture(scope="session")
def ca_issued():
    ca_key = ec.generate_private_key(ec.SECP256R1())
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    return Signer(leaf_key, make_cert(leaf_key, "leaf", issuer_cn="example-ca", issuer_key=ca_key))


@pytest.fixture
def not_self_signed_pem():
    return (DATA_DIR / "not_self_signed.pem").read_bytes()

