"""Command runner for the node binary (Kubo).

Every call passes the repository path explicitly to the child process; the
parent's os.environ is never modified.

key list, pin ls and name publish are requested with --enc=json. The
positional text parsers below are the compatibility path for output that is
not JSON:

    key list        one key name per line
    pin ls          "<cid> recursive" per line           → first token
    name publish    "Published to <name>: /ipfs/<cid>"  → third token,
                    trailing ':' or '/' stripped, leading path segments dropped
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Any

from skprofile.errors import CommandError

log = logging.getLogger("skprofile.node")


# ---------------------------------------------------------------------------
# Text fallbacks
# ---------------------------------------------------------------------------


def parse_key_list_text(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


def parse_pin_ls_text(output: str) -> list[str]:
    cids: list[str] = []
    for line in output.splitlines():
        token = line.strip().split(" ")[0]
        if token:
            cids.append(token)
    return cids


def parse_publish_text(output: str) -> str:
    """Extract the published name from the publish confirmation line."""
    tokens = output.split()
    if len(tokens) < 3:
        msg = f"unexpected publish output: {output!r}"
        raise ValueError(msg)
    token = tokens[2].rstrip("/:")
    return token.rsplit("/", 1)[-1]


def _loads(output: str) -> Any | None:
    """JSON-decode output, or None so the caller can fall back to text."""
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        log.debug("non-JSON output, using text parser: %.80s", output)
        return None


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class KuboNode:
    """Runs subcommands of one node binary against one repository."""

    def __init__(self, binary: Path, repo: Path) -> None:
        self.binary = binary
        self.repo = repo

    def _env(self) -> dict[str, str]:
        return {**os.environ, "IPFS_PATH": str(self.repo)}

    def run(self, *args: str) -> str:
        """Run `<binary> <args>`; return stripped stdout or raise CommandError."""
        cmd = [str(self.binary), *args]
        log.debug("run: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                env=self._env(),
                check=False,
            )
        except OSError as exc:
            raise CommandError(cmd, str(exc)) from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or f"exit status {result.returncode}"
            raise CommandError(cmd, detail, returncode=result.returncode)
        return result.stdout.strip()

    # -- repository ---------------------------------------------------------

    def version(self) -> str:
        return self.run("--version")

    def is_initialized(self) -> bool:
        return (self.repo / "config").exists()

    def init(self) -> str:
        return self.run("init")

    def config_set(self, key: str, value: str) -> None:
        self.run("config", key, value)

    # -- keys -----------------------------------------------------------------

    def key_names(self) -> list[str]:
        out = self.run("key", "list", "--enc=json")
        data = _loads(out)
        if isinstance(data, dict):
            return [k["Name"] for k in data.get("Keys") or [] if k.get("Name")]
        return parse_key_list_text(out)

    def key_import(self, name: str, path: Path) -> None:
        self.run("key", "import", name, str(path))

    def key_gen(self, name: str, key_type: str, size: int) -> str:
        return self.run("key", "gen", name, f"--type={key_type}", f"--size={size}")

    def key_export(self, name: str, path: Path) -> None:
        self.run("key", "export", name, f"--output={path}")

    # -- content --------------------------------------------------------------

    def add_tree(self, path: Path, *, cid_version: int = 1, raw_leaves: bool = True) -> str:
        """Add a directory recursively; returns the root CID."""
        out = self.run(
            "add",
            "-Qr",
            f"--cid-version={cid_version}",
            f"--raw-leaves={str(raw_leaves).lower()}",
            str(path),
        )
        lines = out.splitlines()
        if not lines:
            raise CommandError([str(self.binary), "add", str(path)], "no CID in output")
        return lines[-1].strip()

    def recursive_pins(self) -> list[str]:
        out = self.run("pin", "ls", "--type=recursive", "--enc=json")
        data = _loads(out)
        if isinstance(data, dict):
            return list((data.get("Keys") or {}).keys())
        return parse_pin_ls_text(out)

    def pin_rm(self, cid: str) -> None:
        self.run("pin", "rm", cid)

    def publish(self, key: str, cid: str) -> str:
        """Publish /ipfs/<cid> under key; returns the published name."""
        cmd = ["name", "publish", f"--key={key}", "--enc=json", f"/ipfs/{cid}"]
        out = self.run(*cmd)
        data = _loads(out)
        if isinstance(data, dict) and data.get("Name"):
            return str(data["Name"]).rsplit("/", 1)[-1]
        try:
            return parse_publish_text(out)
        except ValueError as exc:
            raise CommandError([str(self.binary), *cmd], str(exc)) from exc
