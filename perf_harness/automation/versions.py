#!/usr/bin/env python3
"""Catalog of implementation versions and the transport stacks each supports."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import yaml

from perf_harness.automation.config import CONFIG_ROOT, ConfigError

VERSIONS_PATH = CONFIG_ROOT / "versions.yaml"

# Accepted values for --test-filter; "all" selects every version.
IMPLEMENTATIONS = ("js-libp2p", "rust-libp2p", "go-libp2p", "https", "quic-go")
ALL_IMPLEMENTATIONS = "all"


@dataclass(frozen=True)
class Version:
    implementation: str
    id: str
    transport_stacks: Tuple[str, ...]

    @property
    def label(self) -> str:
        return f"{self.implementation}/{self.id}"


def _parse_entry(index: int, entry) -> Version:
    if not isinstance(entry, dict):
        raise ConfigError(f"versions[{index}] is not a mapping")
    implementation = entry.get("implementation")
    version_id = entry.get("id")
    stacks = entry.get("transport_stacks")
    if not implementation or version_id is None:
        raise ConfigError(f"versions[{index}] requires 'implementation' and 'id'")
    if implementation not in IMPLEMENTATIONS:
        print(
            f"[versions] warning: versions[{index}] uses unknown implementation {implementation!r}; "
            "it can only be selected with --test-filter all",
            file=sys.stderr,
        )
    if isinstance(stacks, str):
        stacks = [stacks]
    if not isinstance(stacks, list) or not stacks:
        raise ConfigError(f"versions[{index}] ({implementation}) needs a non-empty 'transport_stacks' list")
    # Keep declaration order, drop duplicates.
    ordered = tuple(dict.fromkeys(str(s) for s in stacks))
    return Version(implementation=str(implementation), id=str(version_id), transport_stacks=ordered)


def load_versions(path: Optional[Path] = None) -> Tuple[Version, ...]:
    cfg_path = Path(path) if path else VERSIONS_PATH
    if not cfg_path.exists():
        raise ConfigError(f"versions config not found: {cfg_path}")
    try:
        raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{cfg_path}: invalid YAML: {exc}") from exc
    entries = raw.get("versions") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise ConfigError(f"{cfg_path}: expected a 'versions' list")
    versions = tuple(_parse_entry(i, entry) for i, entry in enumerate(entries))
    seen = set()
    for version in versions:
        if version.label in seen:
            raise ConfigError(f"{cfg_path}: duplicate version {version.label}")
        seen.add(version.label)
    return versions


def select_versions(versions: Iterable[Version], test_filter: Sequence[str]) -> List[Version]:
    wanted = set(test_filter or [ALL_IMPLEMENTATIONS])
    if ALL_IMPLEMENTATIONS in wanted:
        return list(versions)
    return [v for v in versions if v.implementation in wanted]


def implementations_of(versions: Iterable[Version]) -> List[str]:
    return list(dict.fromkeys(v.implementation for v in versions))
