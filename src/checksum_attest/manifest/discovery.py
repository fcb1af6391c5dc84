from __future__ import annotations

import fnmatch
import logging
import os
import stat
from pathlib import Path
from typing import Iterable, Iterator

from ..config import DiscoveryConfig

TERRAFORM_PATTERNS = ("*.tf",)
PYTHON_PATTERNS = ("*.py",)
CONFIG_PATTERNS = ("*.json", "*.yaml", "*.yml", "*.toml", "*.ini", "*.cfg")
SCRIPT_PATTERNS = ("*.sh",)
DOC_PATTERNS = ("README*", "LICENSE*", "CHANGELOG*", "CONTRIBUTING*")

# Pruned in addition to every dot-prefixed directory
CACHE_DIRS = frozenset({".terraform", "__pycache__"})


def normalize_relpath(path: str) -> str:
    """POSIX separators, no leading ``./``.

    Backslashes are only separators on Windows; elsewhere they are legal
    filename characters and stay as they are.
    """
    p = path.replace(os.sep, "/") if os.sep != "/" else path
    while p.startswith("./"):
        p = p[2:]
    return p


def category_patterns(cfg: DiscoveryConfig) -> list[tuple[str, tuple[str, ...]]]:
    """Return (label, globs) for every enabled source, user includes last."""
    sources: list[tuple[str, tuple[str, ...]]] = []
    if cfg.include_terraform:
        sources.append(("terraform", TERRAFORM_PATTERNS))
    if cfg.include_python:
        sources.append(("python", PYTHON_PATTERNS))
    if cfg.include_config:
        sources.append(("config", CONFIG_PATTERNS))
    if cfg.include_scripts:
        sources.append(("scripts", SCRIPT_PATTERNS))
    if cfg.include_docs:
        sources.append(("docs", DOC_PATTERNS))
    if cfg.include_patterns:
        sources.append(("include", tuple(cfg.include_patterns)))
    return sources


def iter_regular_files(root: Path) -> Iterator[str]:
    """Yield relative POSIX paths of regular, non-hidden files under ``root``.

    Symlinks are neither followed nor reported.
    """
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in CACHE_DIRS
        )
        rel_dir = "/".join(Path(os.path.relpath(dirpath, root)).parts)
        for name in sorted(filenames):
            if name.startswith("."):
                continue
            full = os.path.join(dirpath, name)
            try:
                st = os.lstat(full)
            except FileNotFoundError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            yield f"{rel_dir}/{name}" if rel_dir else name


def matches_include(relpath: str, pattern: str) -> bool:
    # Patterns without a separator behave like ``find -name``
    if "/" in pattern:
        return fnmatch.fnmatchcase(relpath, normalize_relpath(pattern))
    return fnmatch.fnmatchcase(relpath.rsplit("/", 1)[-1], pattern)


def excluded_by(relpath: str, patterns: Iterable[str]) -> str | None:
    """Return the first exclude pattern matching the whole relative path."""
    rel = normalize_relpath(relpath)
    for pat in patterns:
        if fnmatch.fnmatchcase(rel, pat):
            return pat
    return None


def discover_files(
    root: Path,
    cfg: DiscoveryConfig,
    *,
    reserved: Iterable[str] = (),
) -> list[str]:
    """Sorted, duplicate-free list of workspace files selected by ``cfg``.

    ``reserved`` holds relative paths (the manifest and its signature) that are
    never selected.
    """
    sources = category_patterns(cfg)
    if not sources:
        return []
    skip = {normalize_relpath(r) for r in reserved}
    found: set[str] = set()
    for rel in iter_regular_files(root):
        if rel in skip:
            continue
        label = next(
            (lbl for lbl, pats in sources if any(matches_include(rel, p) for p in pats)),
            None,
        )
        if label is None:
            continue
        pat = excluded_by(rel, cfg.exclude_patterns)
        if pat is not None:
            logging.debug("Excluding %s (matches pattern: %s)", rel, pat)
            continue
        logging.debug("Selected %s via %s", rel, label)
        found.add(rel)
    return sorted(found)
