from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from ..config import DiscoveryConfig
from ..errors import ChecksumError, CryptoError, PreconditionError
from ..models import GenerationReport
from ..signing.keys import KeySource, open_key
from ..signing.sign import sign_bytes
from .discovery import discover_files

CHUNK_SIZE = 1024 * 1024


def sha256_file(fp: Path) -> str:
    h = hashlib.sha256()
    with open(fp, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def hash_files(root: Path, paths: Iterable[str]) -> tuple[dict[str, str], list[str]]:
    """Hash each relative path; files that vanished are reported, not fatal."""
    entries: dict[str, str] = {}
    skipped: list[str] = []
    for rel in paths:
        try:
            entries[rel] = sha256_file(root / rel)
        except FileNotFoundError:
            logging.warning("Skipping %s (not found)", rel)
            skipped.append(rel)
            continue
        except OSError as e:
            raise PreconditionError(f"Cannot read {rel}: {e.strerror or e}") from e
        logging.debug("Processed %s", rel)
    return entries, skipped


def serialize_manifest(entries: dict[str, str]) -> bytes:
    """Stable manifest bytes: sorted keys, two-space indent, trailing newline."""
    return (json.dumps(entries, sort_keys=True, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def _relative_to(path: Path, root: Path) -> str | None:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return None


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _write_temp(target: Path, data: bytes) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    # Dot prefix keeps the in-flight file out of discovery
    fd, name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    with os.fdopen(fd, "wb") as f:
        # mkstemp creates 0600; published artifacts follow the umask
        os.fchmod(f.fileno(), 0o666 & ~_current_umask())
        f.write(data)
    return Path(name)


def write_pair(manifest_path: Path, manifest: bytes, signature_path: Path, signature: bytes) -> None:
    """Move manifest and signature into place only once both are fully written."""
    staged: list[Path] = []
    try:
        staged.append(_write_temp(manifest_path, manifest))
        staged.append(_write_temp(signature_path, signature))
        os.replace(staged[0], manifest_path)
        try:
            os.replace(staged[1], signature_path)
        except OSError:
            # The old signature no longer matches the new manifest
            signature_path.unlink(missing_ok=True)
            raise
    finally:
        for tmp in staged:
            tmp.unlink(missing_ok=True)


def generate_manifest(
    root: Path,
    cfg: DiscoveryConfig,
    *,
    manifest_path: Path,
    signature_path: Path,
    key_source: KeySource,
) -> GenerationReport:
    """Discover, hash, serialize and sign; write the pair atomically.

    Nothing is written when signing fails, so an older manifest and signature
    stay consistent with each other.
    """
    reserved = [r for r in (_relative_to(manifest_path, root), _relative_to(signature_path, root)) if r]
    files = discover_files(root, cfg, reserved=reserved)
    logging.debug("Found %d files to include in checksums", len(files))

    entries, skipped = hash_files(root, files)
    payload = serialize_manifest(entries)

    with open_key(key_source) as key_data:
        try:
            signature = sign_bytes(payload, key_data)
        except ChecksumError:
            raise
        except Exception as e:  # noqa: BLE001
            raise CryptoError(f"Failed to generate signature: {e}") from e

    write_pair(manifest_path, payload, signature_path, signature)
    return GenerationReport(
        manifest_path=manifest_path,
        signature_path=signature_path,
        key_source=key_source.label,
        total_files=len(files),
        processed_files=len(entries),
        skipped=skipped,
        entries=entries,
    )
