"""Node binary provisioning: platform detection, download, extraction.

Used by `skprofile install` and at the start of `skprofile run`.

Release archives come from dist.ipfs.tech:

    {dist_url}/kubo/{version}/kubo_{version}_{os}-{arch}.tar.gz   (.zip on windows)

The archive holds kubo/ipfs (kubo/ipfs.exe on windows); only that member is
extracted.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
import tarfile
import tempfile
import urllib.error
import urllib.request
import zipfile
from pathlib import Path
from typing import IO, TYPE_CHECKING

from skprofile.errors import ArchiveError, DownloadError

if TYPE_CHECKING:
    from skprofile.config import ProfileConfig

log = logging.getLogger("skprofile.install")

_TIMEOUT = 60  # seconds per network read
_CHUNK = 64 * 1024

_OS_MAP = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
}
_ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
}


# ---------------------------------------------------------------------------
# Platform
# ---------------------------------------------------------------------------


def platform_target(system: str | None = None, machine: str | None = None) -> tuple[str, str]:
    """Map platform.system()/platform.machine() to dist (os, arch) names."""
    sys_name = (system or platform.system()).lower()
    mach = (machine or platform.machine()).lower()
    return _OS_MAP.get(sys_name, sys_name), _ARCH_MAP.get(mach, mach)


def binary_name(os_name: str | None = None) -> str:
    os_name = os_name or platform_target()[0]
    return "ipfs.exe" if os_name == "windows" else "ipfs"


def binary_path(cfg: ProfileConfig) -> Path:
    return cfg.bin_dir / binary_name()


def download_url(cfg: ProfileConfig, system: str | None = None, machine: str | None = None) -> str:
    os_name, arch = platform_target(system, machine)
    ext = "zip" if os_name == "windows" else "tar.gz"
    v = cfg.node.version
    return f"{cfg.node.dist_url}/kubo/{v}/kubo_{v}_{os_name}-{arch}.{ext}"


# ---------------------------------------------------------------------------
# Presence check
# ---------------------------------------------------------------------------


def is_present(cfg: ProfileConfig) -> bool:
    """True if the binary exists and `--version` runs."""
    path = binary_path(cfg)
    if not path.exists():
        return False
    try:
        result = subprocess.run(
            [str(path), "--version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0


# ---------------------------------------------------------------------------
# Download + extract
# ---------------------------------------------------------------------------


def _download(url: str, dest: IO[bytes]) -> None:
    req = urllib.request.Request(url, headers={"User-Agent": "skprofile"})  # noqa: S310
    try:
        with urllib.request.urlopen(req, timeout=_TIMEOUT) as resp:  # noqa: S310
            status = getattr(resp, "status", 200)
            if status != 200:
                msg = f"Failed to download {url}: HTTP {status}"
                raise DownloadError(msg)
            shutil.copyfileobj(resp, dest, _CHUNK)
    except urllib.error.HTTPError as exc:
        msg = f"Failed to download {url}: HTTP {exc.code}"
        raise DownloadError(msg) from exc
    except (urllib.error.URLError, OSError) as exc:
        msg = f"Failed to download {url}: {exc}"
        raise DownloadError(msg) from exc


def _extract_from_tar(archive: Path, name: str, dest: Path) -> None:
    try:
        with tarfile.open(archive, "r:gz") as tf:
            member = next(
                (m for m in tf.getmembers() if m.isfile() and Path(m.name).name == name),
                None,
            )
            if member is None:
                msg = f"{name} binary not found in downloaded archive"
                raise ArchiveError(msg)
            src = tf.extractfile(member)
            if src is None:
                msg = f"cannot read {member.name} from archive"
                raise ArchiveError(msg)
            with src, dest.open("wb") as out:
                shutil.copyfileobj(src, out, _CHUNK)
    except (tarfile.TarError, EOFError, OSError) as exc:
        msg = f"cannot extract archive: {exc}"
        raise ArchiveError(msg) from exc


def _extract_from_zip(archive: Path, name: str, dest: Path) -> None:
    try:
        with zipfile.ZipFile(archive) as zf:
            member = next(
                (i for i in zf.infolist() if not i.is_dir() and Path(i.filename).name == name),
                None,
            )
            if member is None:
                msg = f"{name} binary not found in downloaded archive"
                raise ArchiveError(msg)
            with zf.open(member) as src, dest.open("wb") as out:
                shutil.copyfileobj(src, out, _CHUNK)
    except (zipfile.BadZipFile, OSError) as exc:
        msg = f"cannot extract archive: {exc}"
        raise ArchiveError(msg) from exc


def install(cfg: ProfileConfig, system: str | None = None, machine: str | None = None) -> Path:
    """Download and unpack the node binary into cfg.bin_dir. Returns its path.

    Single attempt: DownloadError / ArchiveError propagate to the caller.
    """
    os_name, _ = platform_target(system, machine)
    url = download_url(cfg, system, machine)
    name = binary_name(os_name)
    cfg.bin_dir.mkdir(parents=True, exist_ok=True)
    dest = cfg.bin_dir / name

    log.info("downloading %s", url)
    with tempfile.TemporaryDirectory(dir=cfg.bin_dir) as tmp:
        archive = Path(tmp) / url.rsplit("/", 1)[-1]
        with archive.open("wb") as f:
            _download(url, f)

        # Extract next to the final path, then move into place
        staged = Path(tmp) / name
        if archive.name.endswith(".zip"):
            _extract_from_zip(archive, name, staged)
        else:
            _extract_from_tar(archive, name, staged)
        os.chmod(staged, 0o755)
        os.replace(staged, dest)

    log.info("installed %s", dest)
    return dest
