"""Error types.

Anything derived from SKProfileError that escapes the lifecycle controller is
fatal: the CLI prints it and exits 1. Pin cleanup and key export catch
CommandError themselves and only warn.
"""

from __future__ import annotations


class SKProfileError(RuntimeError):
    """Base error."""


class ConfigError(SKProfileError):
    """skprofile.toml is unreadable or holds an invalid value."""


class ProvisionError(SKProfileError):
    """The node binary could not be installed."""


class DownloadError(ProvisionError):
    """Release archive could not be fetched."""


class ArchiveError(ProvisionError):
    """Release archive is corrupt or does not contain the binary."""


class CommandError(SKProfileError):
    """A node subcommand failed to start or exited non-zero."""

    def __init__(
        self,
        command: list[str],
        message: str,
        *,
        returncode: int | None = None,
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.message = message
        super().__init__(f"{' '.join(command)}: {message}")


class DaemonNotReadyError(SKProfileError):
    """The daemon exited or its control API never answered."""
