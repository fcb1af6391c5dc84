from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn

from .config import build_config, load_config_file
from .errors import ChecksumError, CryptoError, PreconditionError
from .manifest.builder import generate_manifest
from .manifest.verifier import require_artifacts, verify_manifest
from .models import FileOutcome
from .settings import Settings
from .signing.keys import generate_keypair, resolve_key_source

STATUS_TEXT = {
    "ok": "OK",
    "missing": "Missing",
    "mismatch": "Hash mismatch",
    "invalid": "Invalid path",
    "unreadable": "Unreadable",
}


class UsageParser(argparse.ArgumentParser):
    """Usage errors exit with 1 like every other failure."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\nUse --help for usage information\n")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _root(ns: argparse.Namespace) -> Path:
    return Path(ns.root).resolve() if ns.root else Path.cwd()


def cmd_generate(ns: argparse.Namespace) -> int:
    settings = Settings()
    root = _root(ns)
    if ns.config:
        file_cfg = load_config_file(Path(ns.config), required=True)
    else:
        file_cfg = load_config_file(root / settings.config_name)
    cfg = build_config(
        file_cfg,
        toggles={
            "include_terraform": ns.include_terraform,
            "include_python": ns.include_python,
            "include_config": ns.include_config,
            "include_scripts": ns.include_scripts,
            "include_docs": ns.include_docs,
        },
        include_patterns=ns.include,
        exclude_patterns=ns.exclude,
    )
    manifest_path = Path(ns.output) if ns.output else root / settings.manifest_name
    signature_path = settings.signature_path(manifest_path)

    print("Generating checksums...")
    print(f"Workspace: {root}")
    print(f"Output: {manifest_path}")
    if ns.verbose:
        print("Configuration:")
        print(f"   Include Terraform files: {str(cfg.include_terraform).lower()}")
        print(f"   Include Python files: {str(cfg.include_python).lower()}")
        print(f"   Include config files: {str(cfg.include_config).lower()}")
        print(f"   Include scripts: {str(cfg.include_scripts).lower()}")
        print(f"   Include documentation: {str(cfg.include_docs).lower()}")
        if cfg.include_patterns:
            print(f"   Additional include patterns: {' '.join(cfg.include_patterns)}")
        if cfg.exclude_patterns:
            print(f"   Exclude patterns: {' '.join(cfg.exclude_patterns)}")

    key_source = resolve_key_source(
        "private",
        default_file=settings.default_private_key(root),
        primary_env=settings.private_key_env,
        secondary_env=settings.private_key_env_alt,
        key_env=ns.key_env,
        key_file=Path(ns.key) if ns.key else None,
    )
    print(f"Using private key from {key_source.label}")

    report = generate_manifest(
        root,
        cfg,
        manifest_path=manifest_path,
        signature_path=signature_path,
        key_source=key_source,
    )
    if ns.verbose:
        for rel in report.entries:
            print(f"   Processed {rel}")
    for rel in report.skipped:
        print(f"   Skipping {rel} (not found)")
    print("Checksum Generation Summary:")
    print(f"   Total files considered: {report.total_files}")
    print(f"   Files processed: {report.processed_files}")
    print(f"   Checksums file: {report.manifest_path}")
    print(f"   Signature file: {report.signature_path}")
    return 0


def _print_outcome(o: FileOutcome) -> None:
    print(f"   Checking {o.path}... {STATUS_TEXT[o.status]}")
    if o.status == "mismatch":
        print(f"      Expected: {o.expected}")
        print(f"      Found:    {o.actual}")


def cmd_validate(ns: argparse.Namespace) -> int:
    settings = Settings()
    root = _root(ns)
    manifest_path = Path(ns.file) if ns.file else root / settings.manifest_name
    signature_path = settings.signature_path(manifest_path)

    print("Starting signature validation...")
    print(f"Workspace: {root}")
    print(f"Checksums file: {manifest_path}")
    require_artifacts(manifest_path, signature_path)

    key_source = resolve_key_source(
        "public",
        default_file=settings.default_public_key(root),
        primary_env=settings.public_key_env,
        secondary_env=settings.public_key_env_alt,
        key_env=ns.key_env,
        key_file=Path(ns.key) if ns.key else None,
    )
    print(f"Using public key from {key_source.label}")

    try:
        report = verify_manifest(
            root,
            manifest_path=manifest_path,
            signature_path=signature_path,
            key_source=key_source,
        )
    except CryptoError:
        print(f"Signature verification failed; {manifest_path.name} may have been tampered with")
        raise
    print("Signature verification passed")

    for outcome in report.outcomes:
        _print_outcome(outcome)
    failed = len(report.failures)
    print("Verification Summary:")
    print(f"   Total files checked: {report.total_files}")
    print(f"   Files verified: {report.verified_files}")
    print(f"   Failed verifications: {failed}")
    if report.skipped_entries:
        print(f"   Skipped malformed entries: {report.skipped_entries}")
    if failed:
        print(f"Verification failed: {failed} file(s) failed checksum verification", file=sys.stderr)
        return 1
    print(f"All verification checks passed ({report.verified_files} files match recorded checksums)")
    return 0


def cmd_keygen(ns: argparse.Namespace) -> int:
    settings = Settings()
    root = _root(ns)
    out_dir = Path(ns.out_dir) if ns.out_dir else settings.keys_root(root)
    private_path, public_path = generate_keypair(
        out_dir / settings.private_key_name,
        out_dir / settings.public_key_name,
        algorithm=ns.algorithm,
        bits=ns.bits,
        overwrite=ns.force,
    )
    print(f"Private key: {private_path} (0600, keep it secret)")
    print(f"Public key:  {public_path} (0644)")
    return 0


def _add_common(p: argparse.ArgumentParser, *, key_flags: bool = True) -> None:
    p.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    p.add_argument("-r", "--root", help="Workspace root (default: current directory)")
    if not key_flags:
        return
    p.add_argument("-k", "--key", help="Custom key file")
    p.add_argument("--key-env", metavar="VAR", help="Read the key from environment variable VAR")


def build_parser() -> argparse.ArgumentParser:
    p = UsageParser(
        prog="checksum-attest",
        description="Signed SHA-256 checksum manifests for project files",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    gen = sub.add_parser("generate", help="Generate checksums.json and its signature")
    _add_common(gen)
    gen.add_argument("-c", "--config", help="Use custom configuration file")
    gen.add_argument("-o", "--output", help="Custom output file (default: checksums.json)")
    for name, flag, what in (
        ("include_terraform", "--no-terraform", "Terraform files (.tf)"),
        ("include_python", "--no-python", "Python files (.py)"),
        ("include_config", "--no-config", "configuration files"),
        ("include_scripts", "--no-scripts", "shell scripts (.sh)"),
        ("include_docs", "--no-docs", "documentation files"),
    ):
        gen.add_argument(flag, dest=name, action="store_const", const=False, default=None, help=f"Skip {what}")
    gen.add_argument("--include", action="append", default=[], metavar="PATTERN",
                     help="Additional file pattern to include (repeatable)")
    gen.add_argument("--exclude", action="append", default=[], metavar="PATTERN",
                     help="File pattern to exclude (repeatable)")
    gen.set_defaults(func=cmd_generate)

    val = sub.add_parser("validate", help="Verify the signature and every recorded checksum")
    _add_common(val)
    val.add_argument("-f", "--file", help="Custom checksums file (default: checksums.json)")
    val.set_defaults(func=cmd_validate)

    kg = sub.add_parser("keygen", help="Create a signing key pair")
    _add_common(kg, key_flags=False)
    kg.add_argument("--algorithm", choices=("rsa", "ed25519"), default="rsa")
    kg.add_argument("--bits", type=int, default=2048, help="RSA key size")
    kg.add_argument("--out-dir", help="Directory for the key files")
    kg.add_argument("--force", action="store_true", help="Overwrite existing key files")
    kg.set_defaults(func=cmd_keygen)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    _configure_logging(ns.verbose)
    try:
        return ns.func(ns)
    except PreconditionError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.remediation:
            print(e.remediation, file=sys.stderr)
        return 1
    except ChecksumError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def generate_main(argv: list[str] | None = None) -> int:
    return main(["generate", *(sys.argv[1:] if argv is None else argv)])


def validate_main(argv: list[str] | None = None) -> int:
    return main(["validate", *(sys.argv[1:] if argv is None else argv)])


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
