"""Data models shared by the lifecycle controller and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class LifecycleState(str, Enum):
    """Where a session is in the node lifecycle. Transitions only move forward."""

    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    REPO_READY = "repo_ready"
    KEYED = "keyed"
    DAEMON_RUNNING = "daemon_running"
    CONTENT_STAGED = "content_staged"
    ADDED = "added"
    PINS_RECONCILED = "pins_reconciled"
    PUBLISHED = "published"
    AWAITING_OPERATOR_STOP = "awaiting_operator_stop"
    KEY_EXPORTED = "key_exported"
    DAEMON_STOPPED = "daemon_stopped"


@dataclass
class ProfileInput:
    """Operator-entered profile fields."""

    name: str
    bio: str
    post: str


@dataclass
class StagedTree:
    """Paths of the documents written for one publish cycle."""

    root: Path
    profile: Path
    post: Path
    index: Path
    timestamp: str

    @property
    def files(self) -> list[Path]:
        return [self.profile, self.post, self.index]


@dataclass
class SessionResult:
    """Outcome of one complete lifecycle run."""

    root_cid: str
    ipns_name: str
    key_source: str                    # existing | imported | generated
    removed_pins: list[str] = field(default_factory=list)
    pins_clean: bool = True            # False when pin cleanup stopped on an error
    key_exported: bool = False
    public_url: str = ""

    @property
    def ipns_path(self) -> str:
        return f"/ipns/{self.ipns_name}"
