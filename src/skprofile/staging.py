"""Staged document tree: the three JSON files published on every run.

Layout under the staging dir:

    profile.json          {"name", "bio", "created"}
    posts/post0.json      {"timestamp", "content"}
    status_index.json     {"posts": ["/posts/post0.json"]}
"""

from __future__ import annotations

import json
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from skprofile.models import ProfileInput, StagedTree

_POSTS_DIR = "posts"
_FIRST_POST = "post0.json"


def iso_timestamp(now: datetime | None = None) -> str:
    """UTC ISO-8601 with millisecond precision: 2024-05-01T12:00:00.000Z"""
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


def write_tree(staging_dir: Path, profile: ProfileInput, timestamp: str | None = None) -> StagedTree:
    """Replace the staged tree with a fresh one for a single-post profile."""
    ts = timestamp or iso_timestamp()

    # Drop leftovers so nothing from an earlier run ends up in the new content root
    if staging_dir.exists():
        shutil.rmtree(staging_dir)
    posts_dir = staging_dir / _POSTS_DIR
    posts_dir.mkdir(parents=True)

    tree = StagedTree(
        root=staging_dir,
        profile=staging_dir / "profile.json",
        post=posts_dir / _FIRST_POST,
        index=staging_dir / "status_index.json",
        timestamp=ts,
    )
    _write_json(tree.profile, {"name": profile.name, "bio": profile.bio, "created": ts})
    _write_json(tree.post, {"timestamp": ts, "content": profile.post})
    _write_json(tree.index, {"posts": [f"/{_POSTS_DIR}/{_FIRST_POST}"]})
    return tree


def read_tree(staging_dir: Path) -> dict[str, Any] | None:
    """Load the staged profile.json, or None if nothing is staged."""
    profile = staging_dir / "profile.json"
    if not profile.exists():
        return None
    try:
        return json.loads(profile.read_text(encoding="utf-8"))  # type: ignore[no-any-return]
    except json.JSONDecodeError:
        return None
