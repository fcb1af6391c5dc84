"""checksum_attest: signed SHA-256 manifests of workspace files.

``generate_manifest`` discovers and hashes files and writes ``checksums.json``
plus a detached signature; ``verify_manifest`` checks the signature and then
every recorded digest.
"""
from .config import DiscoveryConfig  # noqa: F401
from .manifest.builder import generate_manifest  # noqa: F401
from .manifest.verifier import verify_manifest  # noqa: F401

__version__ = "0.1.0"
