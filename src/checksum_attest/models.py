from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from .errors import IntegrityError

FileStatus = Literal["ok", "missing", "mismatch", "invalid", "unreadable"]


class FileOutcome(BaseModel):
    path: str
    status: FileStatus
    expected: str
    actual: str | None = None  # digest found on disk, when the file was readable

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class GenerationReport(BaseModel):
    manifest_path: Path
    signature_path: Path
    key_source: str
    total_files: int
    processed_files: int
    skipped: list[str] = []
    entries: dict[str, str] = {}


class VerificationReport(BaseModel):
    manifest_path: Path
    key_source: str
    signature_valid: bool
    outcomes: list[FileOutcome] = []
    total_files: int = 0
    skipped_entries: int = 0

    @property
    def verified_files(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failures(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return self.signature_valid and not self.failures

    def raise_for_failures(self) -> None:
        failed = self.failures
        if failed:
            raise IntegrityError(
                f"{len(failed)} file(s) failed checksum verification",
                failures=failed,
            )
