from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest

from skprofile import daemon, install
from skprofile.config import load_config
from skprofile.errors import CommandError


class FakeNode:
    """In-memory stand-in for KuboNode that records every call."""

    def __init__(self, repo: Path, *, keys: list[str] | None = None, pins: list[str] | None = None) -> None:
        self.binary = repo.parent / "ipfs-bin" / "ipfs"
        self.repo = repo
        self.keys = list(keys or [])
        self.pins = list(pins or [])
        self.config: dict[str, str] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, CommandError] = {}
        self.fail_pin_rm: set[str] = set()
        self.root_cid = "bafyroot"
        self.ipns_name = "k51qzi5uqu5dabc"

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def fail(self, op: str, message: str = "boom") -> None:
        self.failures[op] = CommandError(["ipfs", op], message, returncode=1)

    def is_initialized(self) -> bool:
        return (self.repo / "config").exists()

    def init(self) -> str:
        self.calls.append(("init",))
        self._maybe_fail("init")
        self.repo.mkdir(parents=True, exist_ok=True)
        (self.repo / "config").write_text("{}")
        return "initialized"

    def config_set(self, key: str, value: str) -> None:
        self.calls.append(("config", key, value))
        self._maybe_fail("config")
        self.config[key] = value

    def key_names(self) -> list[str]:
        self.calls.append(("key_list",))
        self._maybe_fail("key_list")
        return ["self", *self.keys]

    def key_import(self, name: str, path: Path) -> None:
        self.calls.append(("key_import", name, path))
        self._maybe_fail("key_import")
        self.keys.append(name)

    def key_gen(self, name: str, key_type: str, size: int) -> str:
        self.calls.append(("key_gen", name, key_type, size))
        self._maybe_fail("key_gen")
        self.keys.append(name)
        return "k51generated"

    def key_export(self, name: str, path: Path) -> None:
        self.calls.append(("key_export", name, path))
        self._maybe_fail("key_export")
        path.write_bytes(b"exported-key")

    def add_tree(self, path: Path, *, cid_version: int = 1, raw_leaves: bool = True) -> str:
        self.calls.append(("add", path, cid_version, raw_leaves))
        self._maybe_fail("add")
        if self.root_cid not in self.pins:
            self.pins.append(self.root_cid)
        return self.root_cid

    def recursive_pins(self) -> list[str]:
        self.calls.append(("pin_ls",))
        self._maybe_fail("pin_ls")
        return list(self.pins)

    def pin_rm(self, cid: str) -> None:
        self.calls.append(("pin_rm", cid))
        if cid in self.fail_pin_rm:
            raise CommandError(["ipfs", "pin", "rm", cid], "not pinned", returncode=1)
        self.pins.remove(cid)

    def publish(self, key: str, cid: str) -> str:
        self.calls.append(("publish", key, cid))
        self._maybe_fail("publish")
        return self.ipns_name

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeProc:
    pid = 4242
    returncode: int | None = None

    def poll(self) -> int | None:
        return self.returncode


@pytest.fixture
def cfg(tmp_path):
    return load_config(tmp_path)


@pytest.fixture
def fake_node(cfg):
    return FakeNode(cfg.repo_path)


@pytest.fixture
def fake_runtime(monkeypatch):
    """Stub out binary install and the daemon process; records what happened."""
    events: list[str] = []
    state = {"present": True}

    def fake_is_present(cfg):
        return state["present"]

    def fake_install(cfg, system=None, machine=None):
        events.append("install")
        state["present"] = True
        return install.binary_path(cfg)

    def fake_start(cfg, binary):
        events.append("daemon_start")
        return FakeProc()

    def fake_wait(cfg, proc, timeout=None):
        events.append("daemon_ready")
        return 0.1

    def fake_stop(cfg, proc: subprocess.Popen[bytes]):
        events.append("daemon_stop")
        return 0

    monkeypatch.setattr(install, "is_present", fake_is_present)
    monkeypatch.setattr(install, "install", fake_install)
    monkeypatch.setattr(daemon, "stop_stale_daemon", lambda cfg: "not running")
    monkeypatch.setattr(daemon, "start_daemon", fake_start)
    monkeypatch.setattr(daemon, "wait_until_ready", fake_wait)
    monkeypatch.setattr(daemon, "stop_daemon", fake_stop)
    return {"events": events, "state": state}
