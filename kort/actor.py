"""Identity of whoever is running the render.

Renders done in CI are treated as canonical, so the decision function needs
to know whether it is running in CI and the state records who rendered each
release.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
import getpass
import logging
import os

__all__ = [
    "Actor",
    "EnvironmentActor",
    "CI_ACTOR",
    "UNKNOWN_ACTOR",
]

_LOGGER = logging.getLogger(__name__)

CI_ACTOR = "CI"
UNKNOWN_ACTOR = "unknown"
CI_ENV_VAR = "CI"
_CI_VALUES = ("true", "1")


class Actor(ABC):
    """Answers who is rendering and whether it is CI."""

    @abstractmethod
    def is_ci(self) -> bool:
        """Return True when running in CI."""

    @abstractmethod
    def user(self) -> str:
        """Return the name of the user running the render."""

    def name(self) -> str:
        """Return the name recorded as the renderer of a release."""
        if self.is_ci():
            return CI_ACTOR
        return self.user()


class EnvironmentActor(Actor):
    """An Actor based on the process environment and the OS user."""

    def __init__(
        self, env: Mapping[str, str] | None = None, ci_env_var: str = CI_ENV_VAR
    ) -> None:
        """Initialize EnvironmentActor."""
        self._env = env if env is not None else os.environ
        self._ci_env_var = ci_env_var

    def is_ci(self) -> bool:
        return self._env.get(self._ci_env_var) in _CI_VALUES

    def user(self) -> str:
        try:
            return getpass.getuser()
        except (OSError, KeyError) as err:
            _LOGGER.debug("Unable to determine current user: %s", err)
            return UNKNOWN_ACTOR
