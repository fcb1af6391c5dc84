from __future__ import annotations

import base64
import binascii
import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from nacl.encoding import RawEncoder
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from ..errors import CryptoError

PEM_MARKER = b"-----BEGIN"


def _raw_ed25519(data: bytes) -> bytes:
    """Accept a raw 32-byte key or its base64 form."""
    if len(data) == 32:
        return data
    try:
        raw = base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError("Unsupported key format; provide PEM, or a 32-byte raw or base64 Ed25519 key") from e
    if len(raw) != 32:
        raise CryptoError(f"Ed25519 key must be 32 bytes, got {len(raw)}")
    return raw


def sign_bytes(payload: bytes, key_data: bytes) -> bytes:
    """Detached signature over ``payload`` using SHA-256 based schemes.

    RSA keys sign with PKCS#1 v1.5, EC keys with ECDSA (DER), both over SHA-256,
    matching ``openssl dgst -sha256 -sign``. PEM Ed25519 keys and non-PEM
    32-byte seeds sign with Ed25519.
    """
    if key_data.lstrip().startswith(PEM_MARKER):
        try:
            key = serialization.load_pem_private_key(key_data, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CryptoError(f"Cannot load private key: {e}") from e
        if isinstance(key, rsa.RSAPrivateKey):
            alg = "rsa-pkcs1v15-sha256"
            sig = key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
        elif isinstance(key, ec.EllipticCurvePrivateKey):
            alg = "ecdsa-sha256"
            sig = key.sign(payload, ec.ECDSA(hashes.SHA256()))
        elif isinstance(key, ed25519.Ed25519PrivateKey):
            alg = "ed25519"
            sig = key.sign(payload)
        else:
            raise CryptoError(f"Unsupported private key type: {type(key).__name__}")
    else:
        alg = "ed25519"
        sk = SigningKey(_raw_ed25519(key_data))
        sig = sk.sign(payload, encoder=RawEncoder).signature  # 64 bytes
    logging.debug("Signed %d bytes with %s", len(payload), alg)
    return sig


def verify_bytes(payload: bytes, signature: bytes, key_data: bytes) -> None:
    """Raise ``CryptoError`` unless ``signature`` is valid for ``payload``."""
    if key_data.lstrip().startswith(PEM_MARKER):
        try:
            key = serialization.load_pem_public_key(key_data)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CryptoError(f"Cannot load public key: {e}") from e
        try:
            if isinstance(key, rsa.RSAPublicKey):
                key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
            elif isinstance(key, ec.EllipticCurvePublicKey):
                key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
            elif isinstance(key, ed25519.Ed25519PublicKey):
                key.verify(signature, payload)
            else:
                raise CryptoError(f"Unsupported public key type: {type(key).__name__}")
        except InvalidSignature as e:
            raise CryptoError("Signature verification failed") from e
        return
    vk = VerifyKey(_raw_ed25519(key_data))
    try:
        vk.verify(payload, signature, encoder=RawEncoder)
    except (BadSignatureError, ValueError) as e:
        raise CryptoError("Signature verification failed") from e
