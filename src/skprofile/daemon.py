"""Node daemon management: background process, PID file, readiness probe.

The daemon runs as a child process with output appended to
.skprofile/logs/daemon.log. Its PID is kept in .skprofile/daemon.pid so a run
that was interrupted can be cleaned up by the next `skprofile run` or by
`skprofile stop`.
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import TYPE_CHECKING

from skprofile.errors import DaemonNotReadyError

if TYPE_CHECKING:
    from skprofile.config import ProfileConfig

log = logging.getLogger("skprofile.daemon")

_POLL_INTERVAL = 0.25  # seconds between readiness probes
_PROBE_TIMEOUT = 2     # seconds per probe request
_STOP_TIMEOUT = 10     # seconds to wait after SIGTERM before SIGKILL


# ---------------------------------------------------------------------------
# PID file
# ---------------------------------------------------------------------------


def _read_pid(pid_file: Path) -> int | None:
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


def _pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


def _process_cmdline(pid: int) -> list[str] | None:
    """argv of a running process, or None if it cannot be read."""
    proc_dir = Path("/proc")
    if proc_dir.is_dir():
        try:
            raw = (proc_dir / str(pid) / "cmdline").read_bytes()
        except OSError:
            return None
        return [arg for arg in raw.decode(errors="replace").split("\0") if arg]
    try:
        result = subprocess.run(
            ["ps", "-o", "command=", "-p", str(pid)],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    return result.stdout.split() if result.returncode == 0 else None


def _is_node_daemon(pid: int) -> bool:
    """True if pid is an `ipfs daemon` process (PIDs get reused after a crash)."""
    args = _process_cmdline(pid)
    if not args:
        return False
    return Path(args[0]).name in ("ipfs", "ipfs.exe") and "daemon" in args[1:]


def _reap(pid: int) -> None:
    # Only succeeds for our own children; anything else is reaped by its parent
    if hasattr(os, "WNOHANG"):
        with contextlib.suppress(ChildProcessError):
            os.waitpid(pid, os.WNOHANG)


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------


def api_ready(cfg: ProfileConfig) -> bool:
    """True if the control API answers /api/v0/version with 200."""
    req = urllib.request.Request(cfg.api_url + "/api/v0/version", data=b"", method="POST")  # noqa: S310
    try:
        with urllib.request.urlopen(req, timeout=_PROBE_TIMEOUT) as resp:  # noqa: S310
            return getattr(resp, "status", 200) == 200
    except (urllib.error.URLError, OSError):
        return False


def own_api_up(cfg: ProfileConfig) -> bool:
    """True if the repo's api file names the configured API address.

    The daemon writes <repo>/api once its own API listener is bound, so an
    answer on the port without this file comes from some other node.
    """
    try:
        return cfg.api_file.read_text().strip() == cfg.node.api
    except OSError:
        return False


def wait_until_ready(
    cfg: ProfileConfig,
    proc: subprocess.Popen[bytes],
    timeout: float | None = None,
) -> float:
    """Poll the control API until this daemon serves it. Returns seconds waited.

    Raises DaemonNotReadyError if the daemon exits first or timeout elapses.
    """
    limit = cfg.node.ready_timeout if timeout is None else timeout
    start = time.monotonic()
    deadline = start + limit
    while True:
        code = proc.poll()
        if code is not None:
            msg = f"daemon exited with status {code} before its API came up (see {cfg.daemon_log})"
            raise DaemonNotReadyError(msg)
        if api_ready(cfg) and own_api_up(cfg) and proc.poll() is None:
            waited = time.monotonic() - start
            log.info("daemon ready after %.2fs", waited)
            return waited
        if time.monotonic() >= deadline:
            msg = f"daemon API at {cfg.api_url} not ready after {limit:.0f}s (see {cfg.daemon_log})"
            raise DaemonNotReadyError(msg)
        time.sleep(_POLL_INTERVAL)


# ---------------------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------------------


def start_daemon(cfg: ProfileConfig, binary: Path) -> subprocess.Popen[bytes]:
    """Spawn `<binary> daemon` against cfg.repo_path and record its PID.

    Refuses to start while something else already answers on the API address.
    """
    if api_ready(cfg):
        msg = f"another node is already serving {cfg.api_url}; stop it or change [node] api"
        raise DaemonNotReadyError(msg)
    cfg.ensure_dirs()
    # Left behind by a crashed daemon; the new one rewrites it when its API is up
    cfg.api_file.unlink(missing_ok=True)
    env = {**os.environ, "IPFS_PATH": str(cfg.repo_path)}
    with cfg.daemon_log.open("ab") as out:
        proc = subprocess.Popen(
            [str(binary), "daemon"],
            stdout=out,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=env,
        )
    cfg.pid_file.write_text(str(proc.pid))
    log.info("daemon started (pid %d)", proc.pid)
    return proc


def stop_daemon(cfg: ProfileConfig, proc: subprocess.Popen[bytes]) -> int | None:
    """Terminate the daemon child and remove the PID file. Returns exit code."""
    if proc.poll() is None:
        proc.terminate()
        try:
            proc.wait(timeout=_STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            log.warning("daemon did not exit after SIGTERM, killing pid %d", proc.pid)
            proc.kill()
            proc.wait()
    cfg.pid_file.unlink(missing_ok=True)
    log.info("daemon stopped (pid %d, status %s)", proc.pid, proc.returncode)
    return proc.returncode


def stop_stale_daemon(cfg: ProfileConfig) -> str:
    """Stop a daemon left behind by an interrupted run (PID file only).

    Only a process that is still an `ipfs daemon` is signalled; any other
    owner of the recorded PID is left alone and the PID file is dropped.
    """
    pid_file = cfg.pid_file
    if not pid_file.exists():
        return "not running"
    pid = _read_pid(pid_file)
    if pid is None or not _pid_running(pid):
        pid_file.unlink(missing_ok=True)
        return "not running (removed stale PID file)"
    if not _is_node_daemon(pid):
        log.warning("pid %d is no longer a node daemon, leaving it alone", pid)
        pid_file.unlink(missing_ok=True)
        return "not running (stale PID file)"
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        return "not running (removed stale PID file)"
    except PermissionError:
        log.warning("no permission to signal pid %d", pid)
        pid_file.unlink(missing_ok=True)
        return f"not stopped (pid {pid} belongs to another user)"

    deadline = time.monotonic() + _STOP_TIMEOUT
    while True:
        _reap(pid)
        if not _pid_running(pid) or time.monotonic() >= deadline:
            break
        time.sleep(_POLL_INTERVAL)
    pid_file.unlink(missing_ok=True)
    if _pid_running(pid):
        log.warning("pid %d still alive after SIGTERM", pid)
        return f"sent SIGTERM to pid {pid}, still running"
    log.info("stopped stale daemon (pid %d)", pid)
    return f"stopped (pid {pid})"


def daemon_status(cfg: ProfileConfig) -> str:
    pid = _read_pid(cfg.pid_file) if cfg.pid_file.exists() else None
    if pid is not None and _pid_running(pid) and _is_node_daemon(pid):
        return f"running (pid {pid})"
    return "stopped"
