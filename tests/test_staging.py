from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta, timezone

from skprofile.models import ProfileInput
from skprofile.staging import iso_timestamp, read_tree, write_tree

T = "2024-05-01T12:00:00.000Z"


def _load(path):
    return json.loads(path.read_text(encoding="utf-8"))


def test_write_tree_documents(tmp_path) -> None:
    tree = write_tree(tmp_path / "profile", ProfileInput(name="Alice", bio="hi", post="hello"), T)

    assert _load(tree.profile) == {"name": "Alice", "bio": "hi", "created": T}
    assert _load(tree.post) == {"timestamp": T, "content": "hello"}
    assert _load(tree.index) == {"posts": ["/posts/post0.json"]}
    assert tree.post == tmp_path / "profile" / "posts" / "post0.json"
    assert tree.timestamp == T


def test_write_tree_replaces_previous_tree(tmp_path) -> None:
    staging_dir = tmp_path / "profile"
    write_tree(staging_dir, ProfileInput(name="Old", bio="", post="first"), T)
    (staging_dir / "posts" / "post1.json").write_text("{}")
    (staging_dir / "notes.txt").write_text("left over")

    write_tree(staging_dir, ProfileInput(name="New", bio="", post="second"), T)

    files = sorted(p.relative_to(staging_dir).as_posix() for p in staging_dir.rglob("*") if p.is_file())
    assert files == ["posts/post0.json", "profile.json", "status_index.json"]
    assert _load(staging_dir / "profile.json")["name"] == "New"


def test_write_tree_keeps_unicode(tmp_path) -> None:
    tree = write_tree(tmp_path / "p", ProfileInput(name="Zoë", bio="日本", post="héllo"), T)
    assert "Zoë" in tree.profile.read_text(encoding="utf-8")


def test_write_tree_default_timestamp_is_shared(tmp_path) -> None:
    tree = write_tree(tmp_path / "p", ProfileInput(name="A", bio="", post="x"))
    assert _load(tree.profile)["created"] == _load(tree.post)["timestamp"] == tree.timestamp
    assert tree.timestamp.endswith("Z")


def test_iso_timestamp_format() -> None:
    now = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=UTC)
    assert iso_timestamp(now) == "2024-05-01T12:00:00.123Z"


def test_iso_timestamp_converts_to_utc() -> None:
    now = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert iso_timestamp(now) == "2024-05-01T12:00:00.000Z"


def test_read_tree(tmp_path) -> None:
    assert read_tree(tmp_path / "missing") is None
    write_tree(tmp_path / "p", ProfileInput(name="Alice", bio="hi", post="hello"), T)
    assert read_tree(tmp_path / "p") == {"name": "Alice", "bio": "hi", "created": T}
