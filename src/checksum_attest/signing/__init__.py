from .keys import KeySource, generate_keypair, materialize, resolve_key_source  # noqa: F401
from .sign import sign_bytes, verify_bytes  # noqa: F401
