"""Lifecycle controller: takes the node from absent to published and back.

    NOT_INSTALLED -> INSTALLED -> REPO_READY -> KEYED -> DAEMON_RUNNING
       -> CONTENT_STAGED -> ADDED -> PINS_RECONCILED -> PUBLISHED
       -> AWAITING_OPERATOR_STOP -> KEY_EXPORTED -> DAEMON_STOPPED

Every step runs once, in order, in the calling thread. Errors from install,
repo, key, daemon, add and publish steps propagate (fatal). Pin cleanup and key
export catch CommandError and log a warning instead.

After reconciliation the recursive pin set is exactly {root}, unless a
listing or removal failed: the first failure stops the remaining removals.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from skprofile import daemon, install, staging
from skprofile.errors import CommandError, SKProfileError
from skprofile.models import LifecycleState, SessionResult
from skprofile.node import KuboNode

if TYPE_CHECKING:
    import subprocess
    from collections.abc import Callable

    from skprofile.config import ProfileConfig
    from skprofile.models import ProfileInput, StagedTree

log = logging.getLogger("skprofile.lifecycle")


def _log_report(level: str, message: str) -> None:
    if level == "warn":
        log.warning(message)
    else:
        log.info(message)


def reconcile_pins(node: KuboNode, keep: str) -> tuple[list[str], bool]:
    """Unpin every recursive pin except keep. Returns (removed, clean).

    Stops at the first failing command; what was removed so far stays removed.
    """
    removed: list[str] = []
    try:
        stale = [cid for cid in node.recursive_pins() if cid and cid != keep]
        for cid in stale:
            log.info("unpinning old CID: %s", cid)
            node.pin_rm(cid)
            removed.append(cid)
    except CommandError as exc:
        log.warning("failed to clean old pins: %s", exc)
        return removed, False
    return removed, True


class Lifecycle:
    """One node session. Call the steps in order, or run() for all of them."""

    def __init__(
        self,
        cfg: ProfileConfig,
        node: KuboNode | None = None,
        report: Callable[[str, str], None] | None = None,
    ) -> None:
        self.cfg = cfg
        self.node = node or KuboNode(install.binary_path(cfg), cfg.repo_path)
        self.report = report or _log_report
        self.state = LifecycleState.NOT_INSTALLED
        self.proc: subprocess.Popen[bytes] | None = None

    def _advance(self, state: LifecycleState) -> None:
        log.debug("%s -> %s", self.state.value, state.value)
        self.state = state

    # -- setup ----------------------------------------------------------------

    def ensure_installed(self) -> None:
        if not install.is_present(self.cfg):
            self.report("info", f"Node binary not found, downloading {install.download_url(self.cfg)}")
            path = install.install(self.cfg)
            self.report("ok", f"Installed {path}")
        self._advance(LifecycleState.INSTALLED)

    def ensure_repo(self) -> bool:
        """Init the repository if needed, then pin the listen addresses.

        Returns True if the repository was initialized by this call.
        """
        created = False
        if not self.node.is_initialized():
            self.node.init()
            created = True
            self.report("ok", f"Initialized repository at {self.cfg.repo_path}")
        self.node.config_set("Addresses.Gateway", self.cfg.node.gateway)
        self.node.config_set("Addresses.API", self.cfg.node.api)
        self._advance(LifecycleState.REPO_READY)
        return created

    def ensure_key(self) -> str:
        """Make sure exactly one key with the configured name exists.

        Returns "existing", "imported" or "generated".
        """
        name = self.cfg.key.name
        if name in self.node.key_names():
            source = "existing"
            self.report("ok", f"IPNS key '{name}' already exists")
        elif self.cfg.key_file.exists():
            self.node.key_import(name, self.cfg.key_file)
            source = "imported"
            self.report("ok", f"Imported saved IPNS key from {self.cfg.key_file}")
        else:
            self.node.key_gen(name, self.cfg.key.type, self.cfg.key.size)
            source = "generated"
            self.report(
                "warn",
                f"No saved key at {self.cfg.key_file}: generated a new IPNS identity '{name}'",
            )
        self._advance(LifecycleState.KEYED)
        return source

    def start_daemon(self) -> None:
        stale = daemon.stop_stale_daemon(self.cfg)
        if stale.startswith(("stopped", "sent", "not stopped")):
            self.report("warn", f"Previous daemon: {stale}")
        self.proc = daemon.start_daemon(self.cfg, self.node.binary)
        waited = daemon.wait_until_ready(self.cfg, self.proc)
        self.report("ok", f"Daemon ready (pid {self.proc.pid}, {waited:.1f}s)")
        self._advance(LifecycleState.DAEMON_RUNNING)

    # -- publish cycle ----------------------------------------------------------

    def stage(self, profile: ProfileInput, timestamp: str | None = None) -> StagedTree:
        tree = staging.write_tree(self.cfg.staging_dir, profile, timestamp)
        self._advance(LifecycleState.CONTENT_STAGED)
        return tree

    def add(self) -> str:
        root = self.node.add_tree(
            self.cfg.staging_dir,
            cid_version=self.cfg.content.cid_version,
            raw_leaves=self.cfg.content.raw_leaves,
        )
        self._advance(LifecycleState.ADDED)
        return root

    def reconcile_pins(self, root: str) -> tuple[list[str], bool]:
        removed, clean = reconcile_pins(self.node, root)
        for cid in removed:
            self.report("ok", f"Unpinned old CID {cid}")
        if not clean:
            self.report("warn", "Failed to clean old pins; stale pins may remain")
        self._advance(LifecycleState.PINS_RECONCILED)
        return removed, clean

    def publish(self, root: str) -> str:
        name = self.node.publish(self.cfg.key.name, root)
        self._advance(LifecycleState.PUBLISHED)
        return name

    # -- teardown ---------------------------------------------------------------

    def await_stop(self, wait: Callable[[], object]) -> None:
        self._advance(LifecycleState.AWAITING_OPERATOR_STOP)
        wait()

    def export_key(self) -> bool:
        try:
            self.node.key_export(self.cfg.key.name, self.cfg.key_file)
        except CommandError as exc:
            log.warning("failed to export key: %s", exc)
            self.report("warn", f"Failed to export key: {exc.message}")
            ok = False
        else:
            self.report("ok", f"Key exported to {self.cfg.key_file}")
            ok = True
        self._advance(LifecycleState.KEY_EXPORTED)
        return ok

    def stop_daemon(self) -> None:
        if self.proc is not None:
            daemon.stop_daemon(self.cfg, self.proc)
            self.proc = None
        self._advance(LifecycleState.DAEMON_STOPPED)

    # -- whole session ----------------------------------------------------------

    def run(
        self,
        collect: Callable[[], ProfileInput],
        wait: Callable[[], object],
        on_published: Callable[[SessionResult], None] | None = None,
    ) -> SessionResult:
        """Run every step once. Fatal errors propagate after the daemon child is stopped."""
        self.ensure_installed()
        self.ensure_repo()
        key_source = self.ensure_key()
        try:
            self.start_daemon()
            self.stage(collect())
            root = self.add()
            removed, clean = self.reconcile_pins(root)
            name = self.publish(root)
        except SKProfileError:
            # Leave self.state at the failed step; only the child process is cleaned up
            if self.proc is not None:
                daemon.stop_daemon(self.cfg, self.proc)
                self.proc = None
            raise

        result = SessionResult(
            root_cid=root,
            ipns_name=name,
            key_source=key_source,
            removed_pins=removed,
            pins_clean=clean,
            public_url=self.cfg.public_url(name),
        )
        if on_published is not None:
            on_published(result)

        self.await_stop(wait)
        result.key_exported = self.export_key()
        self.stop_daemon()
        return result
