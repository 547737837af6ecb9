"""RSA signing of artifact digests for the run logbook."""
from __future__ import annotations

import sys

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..constants import KEY_FILE, PUB_FILE


def _pss():
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.MAX_LENGTH)


def ensure_keypair(key_file=KEY_FILE, pub_file=PUB_FILE):
    """Load the signing key, creating an RSA keypair on first use."""

    try:
        with open(key_file, "rb") as f:
            return serialization.load_pem_private_key(f.read(), password=None)
    except FileNotFoundError:
        pass

    print("🔐 Generating new macrotape RSA keypair ...", file=sys.stderr)
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(key_file, "wb") as f:
        f.write(
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
    with open(pub_file, "wb") as f:
        f.write(
            private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )
    print(f"  ✓ Keys written to {key_file}, {pub_file}", file=sys.stderr)
    return private_key


def sign_digest(sha256_hex, key_file=KEY_FILE, pub_file=PUB_FILE):
    """Sign a SHA-256 hex digest and return the signature as hex."""

    private_key = ensure_keypair(key_file, pub_file)
    signature = private_key.sign(sha256_hex.encode(), _pss(), hashes.SHA256())
    return signature.hex()


def verify_digest(sha256_hex, signature_hex, pub_file=PUB_FILE):
    """Check ``signature_hex`` against the public key; False when it does not match."""

    with open(pub_file, "rb") as f:
        public_key = serialization.load_pem_public_key(f.read())
    try:
        public_key.verify(
            bytes.fromhex(signature_hex), sha256_hex.encode(), _pss(), hashes.SHA256()
        )
    except (InvalidSignature, ValueError):
        return False
    return True


__all__ = [
    "ensure_keypair",
    "sign_digest",
    "verify_digest",
]
