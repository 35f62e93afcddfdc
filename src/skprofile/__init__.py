"""Publish a small JSON profile over IPFS/IPNS from a self-provisioned Kubo node.

One run:
    install node binary (if missing) → init repository → import/generate the
    'profile' key → start daemon → stage + add the profile tree → unpin every
    older root → publish IPNS record → wait for operator → export key → stop.

The published tree:
    profile.json          {"name", "bio", "created"}
    posts/post0.json      {"timestamp", "content"}
    status_index.json     {"posts": ["/posts/post0.json"]}
"""

from skprofile.config import ProfileConfig, init_config, load_config
from skprofile.lifecycle import Lifecycle, reconcile_pins
from skprofile.models import LifecycleState, ProfileInput, SessionResult
from skprofile.node import KuboNode

__all__ = [
    "KuboNode",
    "Lifecycle",
    "LifecycleState",
    "ProfileConfig",
    "ProfileInput",
    "SessionResult",
    "init_config",
    "load_config",
    "reconcile_pins",
]
