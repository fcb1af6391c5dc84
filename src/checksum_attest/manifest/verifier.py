"""Manifest verification.

Two gated stages. The detached signature is checked against the exact bytes
on disk first; a manifest whose signature fails is never used to enumerate
files. Only then is each recorded digest recomputed and compared.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from ..errors import ChecksumError, CryptoError, PreconditionError
from ..models import FileOutcome, VerificationReport
from ..signing.keys import KeySource, open_key
from ..signing.sign import verify_bytes
from .builder import sha256_file


def _is_safe_relative(path: str) -> bool:
    if os.path.isabs(path) or path.startswith("/"):
        return False
    norm = os.path.normpath(path).replace("\\", "/")
    if norm.startswith("../") or norm == "..":
        return False
    return True


def require_artifacts(manifest_path: Path, signature_path: Path) -> None:
    if not manifest_path.is_file():
        raise PreconditionError(f"{manifest_path.name} not found at {manifest_path}")
    if not signature_path.is_file():
        raise PreconditionError(f"Signature file not found at {signature_path}")


def check_signature(manifest_bytes: bytes, signature: bytes, key_source: KeySource) -> None:
    with open_key(key_source) as key_data:
        try:
            verify_bytes(manifest_bytes, signature, key_data)
        except ChecksumError:
            raise
        except Exception as e:  # noqa: BLE001
            raise CryptoError(f"Signature verification failed: {e}") from e


def _reject_duplicates(pairs: list[tuple[str, object]]) -> dict:
    out: dict = {}
    for key, value in pairs:
        if key in out:
            raise PreconditionError(f"Manifest has duplicate key: {key!r}")
        out[key] = value
    return out


def parse_manifest(manifest_bytes: bytes) -> dict:
    try:
        data = json.loads(manifest_bytes.decode("utf-8"), object_pairs_hook=_reject_duplicates)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PreconditionError(f"Manifest is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PreconditionError("Manifest must be a JSON object of path -> digest")
    return data


def check_entry(root: Path, rel: str, expected: str) -> FileOutcome:
    expected = expected.lower()
    if not _is_safe_relative(rel):
        return FileOutcome(path=rel, status="invalid", expected=expected)
    fp = root / rel
    try:
        if not fp.is_file():
            return FileOutcome(path=rel, status="missing", expected=expected)
        current = sha256_file(fp)
    except FileNotFoundError:
        return FileOutcome(path=rel, status="missing", expected=expected)
    except OSError as e:
        logging.warning("Cannot read %s: %s", rel, e)
        return FileOutcome(path=rel, status="unreadable", expected=expected)
    status = "ok" if current == expected else "mismatch"
    return FileOutcome(path=rel, status=status, expected=expected, actual=current)


def verify_manifest(
    root: Path,
    *,
    manifest_path: Path,
    signature_path: Path,
    key_source: KeySource,
) -> VerificationReport:
    """Run both stages and return the per-file report.

    Raises ``PreconditionError`` for missing artifacts and ``CryptoError`` when
    the signature does not verify. Per-file failures are recorded in the
    report; call ``raise_for_failures`` to turn them into an ``IntegrityError``.
    """
    require_artifacts(manifest_path, signature_path)
    manifest_bytes = manifest_path.read_bytes()
    signature = signature_path.read_bytes()

    check_signature(manifest_bytes, signature, key_source)
    logging.debug("Signature verification passed for %s", manifest_path)

    report = VerificationReport(
        manifest_path=manifest_path,
        key_source=key_source.label,
        signature_valid=True,
    )
    for rel, expected in parse_manifest(manifest_bytes).items():
        report.total_files += 1
        if not rel or not isinstance(expected, str) or not expected:
            logging.debug("Skipping malformed manifest entry %r", rel)
            report.skipped_entries += 1
            continue
        outcome = check_entry(root, rel, expected)
        if not outcome.ok:
            logging.debug("%s: %s", rel, outcome.status)
        report.outcomes.append(outcome)
    return report
