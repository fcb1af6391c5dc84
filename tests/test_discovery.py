import os

import pytest

from checksum_attest.config import DiscoveryConfig
from checksum_attest.manifest.discovery import discover_files, excluded_by, normalize_relpath

from conftest import write

EXPECTED = [
    "README.md",
    "config/settings.yaml",
    "lambda/handler.py",
    "main.tf",
    "modules/net/vpc.tf",
    "package.json",
    "scripts/deploy.sh",
]


def test_default_categories_sorted_and_deduplicated(workspace):
    files = discover_files(workspace, DiscoveryConfig())
    assert files == EXPECTED
    # Stable across runs
    assert discover_files(workspace, DiscoveryConfig()) == files


def test_hidden_and_cache_directories_are_pruned(workspace):
    write(workspace, "src/__pycache__/mod.py", "cached\n")
    write(workspace, "src/.venv/lib/site.py", "hidden\n")
    write(workspace, ".env.json", "{}\n")
    files = discover_files(workspace, DiscoveryConfig())
    assert not any(f.startswith(".") or "/." in f for f in files)
    assert "src/__pycache__/mod.py" not in files


@pytest.mark.parametrize(
    "toggle, dropped",
    [
        ("include_terraform", {"main.tf", "modules/net/vpc.tf"}),
        ("include_python", {"lambda/handler.py"}),
        ("include_config", {"config/settings.yaml", "package.json"}),
        ("include_scripts", {"scripts/deploy.sh"}),
        ("include_docs", {"README.md"}),
    ],
)
def test_disabling_a_category_drops_only_its_files(workspace, toggle, dropped):
    files = discover_files(workspace, DiscoveryConfig(**{toggle: False}))
    assert files == [f for f in EXPECTED if f not in dropped]


def test_include_pattern_matches_basename_at_any_depth(workspace):
    write(workspace, "docs/guide/intro.txt")
    cfg = DiscoveryConfig(include_patterns=("*.txt",))
    files = discover_files(workspace, cfg)
    assert "notes.txt" in files
    assert "docs/guide/intro.txt" in files


def test_include_pattern_with_separator_matches_relative_path(workspace):
    write(workspace, "docs/guide/intro.txt")
    cfg = DiscoveryConfig(include_patterns=("docs/*.txt",))
    files = discover_files(workspace, cfg)
    assert "docs/guide/intro.txt" in files
    assert "notes.txt" not in files


def test_exclude_wins_over_category(workspace):
    cfg = DiscoveryConfig(exclude_patterns=("scripts/*", "*.yaml"))
    files = discover_files(workspace, cfg)
    assert "scripts/deploy.sh" not in files
    assert "config/settings.yaml" not in files
    assert "main.tf" in files


def test_exclude_is_anchored_to_full_path(workspace):
    # "handler.py" alone does not match "lambda/handler.py"
    cfg = DiscoveryConfig(exclude_patterns=("handler.py",))
    assert "lambda/handler.py" in discover_files(workspace, cfg)


def test_exclude_glob_forms():
    assert excluded_by("test_a.py", ["test*"]) == "test*"
    assert excluded_by("a/b/c.tf", ["a/*.tf"]) == "a/*.tf"
    assert excluded_by("x1.sh", ["x[0-9].sh"]) == "x[0-9].sh"
    assert excluded_by("x10.sh", ["x?.sh"]) is None
    assert excluded_by("./main.tf", ["main.tf"]) == "main.tf"
    assert excluded_by("Main.tf", ["main.tf"]) is None


def test_reserved_outputs_never_selected(workspace):
    write(workspace, "checksums.json", "{}\n")
    write(workspace, "checksums.json.sig", "sig")
    cfg = DiscoveryConfig(include_patterns=("*.sig",))
    files = discover_files(workspace, cfg, reserved=["checksums.json", "./checksums.json.sig"])
    assert "checksums.json" not in files
    assert "checksums.json.sig" not in files


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinks_are_not_included(workspace, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    write(outside, "secret.py", "x = 1\n")
    os.symlink(outside, workspace / "linked_dir")
    os.symlink(workspace / "main.tf", workspace / "alias.tf")
    files = discover_files(workspace, DiscoveryConfig())
    assert "alias.tf" not in files
    assert not any(f.startswith("linked_dir/") for f in files)


def test_no_enabled_sources_yields_nothing(workspace):
    cfg = DiscoveryConfig(
        include_terraform=False,
        include_python=False,
        include_config=False,
        include_scripts=False,
        include_docs=False,
    )
    assert discover_files(workspace, cfg) == []


def test_pattern_matching_nothing_is_not_an_error(workspace):
    cfg = DiscoveryConfig(include_patterns=("*.nothing",))
    assert discover_files(workspace, cfg) == EXPECTED


def test_normalize_relpath():
    assert normalize_relpath("./a/b") == "a/b"
    if os.sep == "/":
        assert normalize_relpath("a\\b") == "a\\b"
    else:
        assert normalize_relpath("a\\b") == "a/b"


@pytest.mark.skipif(os.sep != "/", reason="backslash is a separator on Windows")
def test_backslash_in_filename_is_kept(workspace, private_source):
    from checksum_attest.manifest.builder import generate_manifest

    write(workspace, "evil\\payload.py", "import os\n")
    files = discover_files(workspace, DiscoveryConfig())
    assert "evil\\payload.py" in files
    assert "evil/payload.py" not in files

    report = generate_manifest(
        workspace,
        DiscoveryConfig(),
        manifest_path=workspace / "checksums.json",
        signature_path=workspace / "checksums.json.sig",
        key_source=private_source,
    )
    assert report.skipped == []
    assert "evil\\payload.py" in report.entries
