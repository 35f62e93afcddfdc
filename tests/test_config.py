from __future__ import annotations

import pytest

from skprofile.config import init_config, load_config, multiaddr_to_url
from skprofile.errors import ConfigError


def test_defaults_without_config_file(tmp_path) -> None:
    cfg = load_config(tmp_path)
    assert cfg.root == tmp_path.resolve()
    assert cfg.node.version == "v0.24.0"
    assert cfg.node.gateway == "/ip4/127.0.0.1/tcp/8080"
    assert cfg.node.api == "/ip4/127.0.0.1/tcp/5001"
    assert cfg.key.name == "profile"
    assert (cfg.key.type, cfg.key.size) == ("rsa", 2048)
    assert cfg.repo_path == cfg.root / "ipfs-user-profile"
    assert cfg.bin_dir == cfg.root / "ipfs-bin"
    assert cfg.staging_dir == cfg.root / "profile"
    assert cfg.key_file == cfg.root / "profile.key"
    assert cfg.api_url == "http://127.0.0.1:5001"


def test_file_values_override_defaults(tmp_path) -> None:
    (tmp_path / "skprofile.toml").write_text(
        '[node]\napi = "/ip4/127.0.0.1/tcp/5002"\nready_timeout = 5\n'
        '[key]\nname = "alt"\nsize = 4096\n'
        '[content]\ncid_version = 0\nraw_leaves = false\n'
    )
    cfg = load_config(tmp_path)
    assert cfg.api_url == "http://127.0.0.1:5002"
    assert cfg.node.ready_timeout == 5.0
    assert (cfg.key.name, cfg.key.size) == ("alt", 4096)
    assert (cfg.content.cid_version, cfg.content.raw_leaves) == (0, False)


def test_root_found_by_searching_upward(tmp_path) -> None:
    (tmp_path / "skprofile.toml").write_text('[key]\nname = "up"\n')
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    cfg = load_config(nested)
    assert cfg.root == tmp_path.resolve()
    assert cfg.key.name == "up"


def test_invalid_toml_raises_config_error(tmp_path) -> None:
    (tmp_path / "skprofile.toml").write_text("[node\n")
    with pytest.raises(ConfigError, match="invalid TOML"):
        load_config(tmp_path)


def test_invalid_number_raises_config_error(tmp_path) -> None:
    (tmp_path / "skprofile.toml").write_text('[key]\nsize = "big"\n')
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_bad_api_multiaddr_raises_config_error(tmp_path) -> None:
    (tmp_path / "skprofile.toml").write_text('[node]\napi = "localhost:5001"\n')
    with pytest.raises(ConfigError, match="multiaddr"):
        load_config(tmp_path)


@pytest.mark.parametrize(
    ("addr", "url"),
    [
        ("/ip4/127.0.0.1/tcp/5001", "http://127.0.0.1:5001"),
        ("/ip6/::1/tcp/5001", "http://[::1]:5001"),
        ("/dns4/localhost/tcp/8080", "http://localhost:8080"),
    ],
)
def test_multiaddr_to_url(addr, url) -> None:
    assert multiaddr_to_url(addr) == url


def test_public_url(tmp_path) -> None:
    cfg = load_config(tmp_path)
    assert cfg.public_url("k51abc") == "https://k51abc.ipns.dweb.link"


def test_init_config_writes_loadable_file(tmp_path) -> None:
    path = init_config(tmp_path)
    assert path == tmp_path / "skprofile.toml"
    cfg = load_config(tmp_path)
    assert cfg.key.name == "profile"
    assert cfg.node.api == "/ip4/127.0.0.1/tcp/5001"


def test_init_config_refuses_to_overwrite(tmp_path) -> None:
    init_config(tmp_path)
    with pytest.raises(FileExistsError):
        init_config(tmp_path)


@pytest.mark.parametrize("value", ['"false"', "0", '"no"'])
def test_raw_leaves_must_be_boolean(tmp_path, value) -> None:
    (tmp_path / "skprofile.toml").write_text(f"[content]\nraw_leaves = {value}\n")
    with pytest.raises(ConfigError, match="raw_leaves must be true or false"):
        load_config(tmp_path)


def test_api_file_lives_in_repo(tmp_path) -> None:
    cfg = load_config(tmp_path)
    assert cfg.api_file == cfg.repo_path / "api"
