import shutil
from pathlib import Path

import pytest

from checksum_attest.signing.keys import KeySource, generate_keypair


@pytest.fixture(scope="session")
def rsa_keys(tmp_path_factory):
    d = tmp_path_factory.mktemp("keys")
    return generate_keypair(d / "private_key.pem", d / "public_key.pem")


@pytest.fixture()
def private_source(rsa_keys):
    return KeySource("private", "file", path=rsa_keys[0])


@pytest.fixture()
def public_source(rsa_keys):
    return KeySource("public", "file", path=rsa_keys[1])


@pytest.fixture(autouse=True)
def _clear_key_env(monkeypatch):
    for var in ("CHECKSUM_PRIVATE_KEY", "PRIVATE_KEY", "CHECKSUM_PUBLIC_KEY", "PUBLIC_KEY"):
        monkeypatch.delenv(var, raising=False)


def write(root: Path, rel: str, data: str = "x\n") -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(data)
    return p


@pytest.fixture()
def workspace(tmp_path, rsa_keys):
    root = tmp_path / "ws"
    root.mkdir()
    write(root, "main.tf", 'resource "null_resource" "x" {}\n')
    write(root, "modules/net/vpc.tf", "variable \"cidr\" {}\n")
    write(root, "lambda/handler.py", "def handler(event, ctx):\n    return event\n")
    write(root, "config/settings.yaml", "debug: false\n")
    write(root, "package.json", '{"name": "demo"}\n')
    write(root, "scripts/deploy.sh", "#!/bin/sh\necho deploy\n")
    write(root, "README.md", "# demo\n")
    write(root, "notes.txt", "not tracked\n")
    write(root, ".terraform/providers/p.tf", "cached\n")
    write(root, ".git/config.json", "{}\n")
    shutil.copy(rsa_keys[0], root / "private_key.pem")
    shutil.copy(rsa_keys[1], root / "public_key.pem")
    return root
