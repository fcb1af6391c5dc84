"""Key resolution, scoped materialization and key-pair generation.

Key content may come from a file or from an environment variable. Env-sourced
content is only ever handed to the crypto layer through a temporary ``0600``
file that is removed when the ``materialize`` block exits, whatever the outcome.
"""
from __future__ import annotations

import base64
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Literal, Mapping

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from nacl.signing import SigningKey

from ..errors import ConfigurationError, PreconditionError

KeyKind = Literal["private", "public"]


@dataclass(frozen=True)
class KeySource:
    kind: KeyKind
    label: str
    path: Path | None = None
    content: str | None = None

    @property
    def from_env(self) -> bool:
        return self.content is not None


def _remediation(kind: KeyKind, default_file: Path, primary_env: str) -> str:
    example = f"MY_{kind.upper()}_KEY"
    return "\n".join([
        f"Options to provide a {kind} key:",
        "   1. Generate a key pair:",
        "      checksum-attest keygen",
        "   2. Use an environment variable:",
        f'      export {primary_env}="$(cat your-{kind}-key.pem)"',
        "   3. Specify a custom environment variable:",
        f'      export {example}="$(cat your-{kind}-key.pem)"',
        f"      ... --key-env {example}",
        f"   (default key file: {default_file})",
    ])


def resolve_key_source(
    kind: KeyKind,
    *,
    default_file: Path,
    primary_env: str,
    secondary_env: str,
    key_env: str | None = None,
    key_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> KeySource:
    """Pick the key source: --key-env, primary env, secondary env, then file.

    A variable named through ``key_env`` that is unset or empty is an error;
    there is no fallback in that case.
    """
    env = os.environ if environ is None else environ
    if key_env:
        value = env.get(key_env, "")
        if not value:
            raise ConfigurationError(f"Environment variable {key_env} is not set or empty")
        return KeySource(kind, f"environment variable {key_env}", content=value)
    value = env.get(primary_env, "")
    if value:
        return KeySource(kind, f"environment variable {primary_env}", content=value)
    value = env.get(secondary_env, "")
    # The secondary name is commonly set to the default file path itself
    if value and value != str(default_file):
        return KeySource(kind, f"environment variable {secondary_env}", content=value)
    path = key_file or default_file
    if not path.is_file():
        raise PreconditionError(
            f"{kind.capitalize()} key not found at {path}",
            remediation=_remediation(kind, default_file, primary_env),
        )
    return KeySource(kind, f"file: {path}", path=path)


def _env_content_bytes(content: str) -> bytes:
    # CI secret stores often flatten PEM newlines to a literal "\n"
    text = content.replace("\\n", "\n")
    if not text.endswith("\n"):
        text += "\n"
    return text.encode("utf-8")


@contextmanager
def materialize(source: KeySource) -> Iterator[Path]:
    """Yield a filesystem path holding the key for the duration of the block."""
    if not source.from_env:
        assert source.path is not None
        yield source.path
        return
    fd, name = tempfile.mkstemp(prefix="checksum-key-", suffix=".pem")
    tmp = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), 0o600)
            f.write(_env_content_bytes(source.content or ""))
        logging.debug("Materialized %s key from %s", source.kind, source.label)
        yield tmp
    finally:
        tmp.unlink(missing_ok=True)


@contextmanager
def open_key(source: KeySource) -> Iterator[bytes]:
    """Yield the raw key bytes, going through ``materialize``."""
    with materialize(source) as path:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise PreconditionError(f"Cannot read {source.kind} key from {source.label}: {e}") from e
        yield data


def generate_keypair(
    private_path: Path,
    public_path: Path,
    *,
    algorithm: Literal["rsa", "ed25519"] = "rsa",
    bits: int = 2048,
    overwrite: bool = False,
) -> tuple[Path, Path]:
    """Write a fresh key pair: private ``0600``, public ``0644``.

    RSA keys are PEM (PKCS#8 / SubjectPublicKeyInfo). Ed25519 keys are the
    base64 of the raw 32-byte seed and verify key.
    """
    existing = [p for p in (private_path, public_path) if p.exists()]
    if existing and not overwrite:
        names = ", ".join(str(p) for p in existing)
        raise PreconditionError(
            f"Key files already exist: {names}",
            remediation="Pass --force to overwrite them.",
        )
    if algorithm == "rsa":
        if bits < 2048:
            raise ConfigurationError(f"RSA keys must be at least 2048 bits (got {bits})")
        sk = rsa.generate_private_key(public_exponent=65537, key_size=bits)
        private_bytes = sk.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        public_bytes = sk.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    elif algorithm == "ed25519":
        signing_key = SigningKey.generate()
        private_bytes = base64.b64encode(bytes(signing_key)) + b"\n"
        public_bytes = base64.b64encode(bytes(signing_key.verify_key)) + b"\n"
    else:
        raise ConfigurationError(f"Unsupported key algorithm: {algorithm}")
    _write_key(private_path, private_bytes, 0o600)
    _write_key(public_path, public_bytes, 0o644)
    return private_path, public_path


def _write_key(path: Path, data: bytes, mode: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as f:
        os.fchmod(f.fileno(), mode)
        f.write(data)
