from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHECKSUM_ATTEST_")

    # Artifact names, relative to the workspace root
    manifest_name: str = "checksums.json"
    signature_suffix: str = ".sig"
    config_name: str = "checksum_config.json"

    # Key files; key_dir falls back to the workspace root when unset
    key_dir: Path | None = None
    private_key_name: str = "private_key.pem"
    public_key_name: str = "public_key.pem"

    # Well-known variables holding key content (checked after --key-env)
    private_key_env: str = "CHECKSUM_PRIVATE_KEY"
    private_key_env_alt: str = "PRIVATE_KEY"
    public_key_env: str = "CHECKSUM_PUBLIC_KEY"
    public_key_env_alt: str = "PUBLIC_KEY"

    def keys_root(self, workspace_root: Path) -> Path:
        return self.key_dir if self.key_dir is not None else workspace_root

    def default_private_key(self, workspace_root: Path) -> Path:
        return self.keys_root(workspace_root) / self.private_key_name

    def default_public_key(self, workspace_root: Path) -> Path:
        return self.keys_root(workspace_root) / self.public_key_name

    def signature_path(self, manifest_path: Path) -> Path:
        return manifest_path.with_name(manifest_path.name + self.signature_suffix)
