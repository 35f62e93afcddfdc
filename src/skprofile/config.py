"""ProfileConfig: project-local config for the profile publisher.

Default layout (all relative to the project root):

    skprofile.toml        # project config (optional, defaults apply)
    ipfs-bin/
        ipfs              # node binary, downloaded on first run
    ipfs-user-profile/    # node repository (IPFS_PATH)
        config
        api               # written by the daemon once its API is listening
    profile/              # staged document tree, rewritten every run
        profile.json
        status_index.json
        posts/post0.json
    profile.key           # exported identity key
    .skprofile/
        daemon.pid
        logs/daemon.log

skprofile.toml example:

    [node]
    version = "v0.24.0"
    gateway = "/ip4/127.0.0.1/tcp/8080"
    api = "/ip4/127.0.0.1/tcp/5001"
    ready_timeout = 30.0

    [key]
    name = "profile"
    type = "rsa"
    size = 2048

    [content]
    cid_version = 1
    raw_leaves = true
"""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skprofile.errors import ConfigError

_CONFIG_FILENAME = "skprofile.toml"
_STATE_DIR = ".skprofile"

_DEFAULT_VERSION = "v0.24.0"
_DEFAULT_DIST_URL = "https://dist.ipfs.tech"
_DEFAULT_GATEWAY = "/ip4/127.0.0.1/tcp/8080"
_DEFAULT_API = "/ip4/127.0.0.1/tcp/5001"
_DEFAULT_PUBLIC_GATEWAY = "https://{name}.ipns.dweb.link"

_MULTIADDR_RE = re.compile(r"^/(ip4|ip6|dns4|dns6|dns)/([^/]+)/tcp/(\d+)$")


@dataclass
class NodeConfig:
    version: str = _DEFAULT_VERSION
    dist_url: str = _DEFAULT_DIST_URL
    bin_dir: str = "ipfs-bin"
    repo_dir: str = "ipfs-user-profile"
    gateway: str = _DEFAULT_GATEWAY
    api: str = _DEFAULT_API
    ready_timeout: float = 30.0


@dataclass
class KeyConfig:
    name: str = "profile"
    type: str = "rsa"
    size: int = 2048
    export_file: str = "profile.key"


@dataclass
class ContentConfig:
    staging_dir: str = "profile"
    cid_version: int = 1
    raw_leaves: bool = True
    public_gateway: str = _DEFAULT_PUBLIC_GATEWAY


@dataclass
class ProfileConfig:
    """Resolved configuration for one publishing root."""

    root: Path
    node: NodeConfig = field(default_factory=NodeConfig)
    key: KeyConfig = field(default_factory=KeyConfig)
    content: ContentConfig = field(default_factory=ContentConfig)

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    @property
    def bin_dir(self) -> Path:
        return self.root / self.node.bin_dir

    @property
    def repo_path(self) -> Path:
        return self.root / self.node.repo_dir

    @property
    def staging_dir(self) -> Path:
        return self.root / self.content.staging_dir

    @property
    def key_file(self) -> Path:
        return self.root / self.key.export_file

    @property
    def api_file(self) -> Path:
        return self.repo_path / "api"

    @property
    def state_dir(self) -> Path:
        return self.root / _STATE_DIR

    @property
    def pid_file(self) -> Path:
        return self.state_dir / "daemon.pid"

    @property
    def daemon_log(self) -> Path:
        return self.state_dir / "logs" / "daemon.log"

    @property
    def api_url(self) -> str:
        """Control API base URL derived from the API multiaddr."""
        return multiaddr_to_url(self.node.api)

    def public_url(self, name: str) -> str:
        return self.content.public_gateway.format(name=name)

    def ensure_dirs(self) -> None:
        """Create the state dir (PID file and daemon log live there)."""
        self.daemon_log.parent.mkdir(parents=True, exist_ok=True)


def multiaddr_to_url(addr: str) -> str:
    """/ip4/127.0.0.1/tcp/5001 → http://127.0.0.1:5001"""
    m = _MULTIADDR_RE.match(addr.strip())
    if not m:
        msg = f"unsupported multiaddr: {addr!r} (expected /ip4/<host>/tcp/<port>)"
        raise ConfigError(msg)
    proto, host, port = m.groups()
    if proto == "ip6":
        host = f"[{host}]"
    return f"http://{host}:{port}"


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        msg = f"[{name}] must be a table in {_CONFIG_FILENAME}"
        raise ConfigError(msg)
    return value


def _bool(section: dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        msg = f"{key} must be true or false, got {value!r}"
        raise TypeError(msg)
    return value


def load_config(root: Path | str | None = None) -> ProfileConfig:
    """Load skprofile.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root).resolve() if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"invalid TOML in {config_path}: {exc}"
            raise ConfigError(msg) from exc

    node_section = _section(raw, "node")
    key_section = _section(raw, "key")
    content_section = _section(raw, "content")

    try:
        cfg = ProfileConfig(
            root=root_path,
            node=NodeConfig(
                version=str(node_section.get("version", _DEFAULT_VERSION)),
                dist_url=str(node_section.get("dist_url", _DEFAULT_DIST_URL)).rstrip("/"),
                bin_dir=str(node_section.get("bin_dir", "ipfs-bin")),
                repo_dir=str(node_section.get("repo_dir", "ipfs-user-profile")),
                gateway=str(node_section.get("gateway", _DEFAULT_GATEWAY)),
                api=str(node_section.get("api", _DEFAULT_API)),
                ready_timeout=float(node_section.get("ready_timeout", 30.0)),
            ),
            key=KeyConfig(
                name=str(key_section.get("name", "profile")),
                type=str(key_section.get("type", "rsa")),
                size=int(key_section.get("size", 2048)),
                export_file=str(key_section.get("export_file", "profile.key")),
            ),
            content=ContentConfig(
                staging_dir=str(content_section.get("staging_dir", "profile")),
                cid_version=int(content_section.get("cid_version", 1)),
                raw_leaves=_bool(content_section, "raw_leaves", True),
                public_gateway=str(content_section.get("public_gateway", _DEFAULT_PUBLIC_GATEWAY)),
            ),
        )
    except (TypeError, ValueError) as exc:
        msg = f"invalid value in {config_path}: {exc}"
        raise ConfigError(msg) from exc

    # Fail early on a bad API address rather than after the daemon starts
    multiaddr_to_url(cfg.node.api)
    multiaddr_to_url(cfg.node.gateway)
    return cfg


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for skprofile.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path) -> Path:
    """Write a default skprofile.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"{_CONFIG_FILENAME} already exists at {config_path}"
        raise FileExistsError(msg)

    content = f"""\
[node]
version = "{_DEFAULT_VERSION}"
# dist_url = "{_DEFAULT_DIST_URL}"
# bin_dir = "ipfs-bin"
# repo_dir = "ipfs-user-profile"
gateway = "{_DEFAULT_GATEWAY}"
api = "{_DEFAULT_API}"
# ready_timeout = 30.0   # seconds to wait for the daemon's control API

[key]
name = "profile"
# type = "rsa"
# size = 2048
# export_file = "profile.key"   # identity survives runs only through this file

[content]
# staging_dir = "profile"
# cid_version = 1
# raw_leaves = true
# public_gateway = "{_DEFAULT_PUBLIC_GATEWAY}"
"""
    root.mkdir(parents=True, exist_ok=True)
    config_path.write_text(content)
    return config_path
