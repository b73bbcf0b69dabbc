"""Exceptions related to kort."""

__all__ = [
    "KortException",
    "InputException",
    "ChecksumException",
    "CommandException",
    "HelmException",
    "PublishException",
]


class KortException(Exception):
    """Generic base exception used for this library."""


class InputException(KortException):
    """Raised when the context or release definitions are not formatted as expected."""


class ChecksumException(KortException):
    """Raised when a checksum can't be derived for a release."""


class CommandException(KortException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class PublishException(KortException):
    """Raised when rendered output can't be moved into place."""

    def __init__(self, release_name: str, message: str) -> None:
        super().__init__(f"Failed to publish {release_name}: {message}")
        self.release_name = release_name
