"""Configuration objects for kort."""

from dataclasses import dataclass, field

from .actor import CI_ENV_VAR, Actor, EnvironmentActor
from .command import DEFAULT_TIMEOUT


@dataclass
class RenderConfig:
    """Configuration for invoking helm."""

    helm_bin: str = "helm"
    """The helm executable."""

    timeout: float = DEFAULT_TIMEOUT
    """Seconds a single helm template invocation may run."""

    extra_args: list[str] = field(default_factory=list)
    """Additional flags appended to every helm template invocation."""


@dataclass
class OrchestratorConfig:
    """Configuration for a render run."""

    render: RenderConfig = field(default_factory=RenderConfig)

    ci_env_var: str = CI_ENV_VAR
    """Environment variable that signals a CI run when "true" or "1"."""

    actor: Actor | None = None
    """Override for who is rendering, detected from the environment when unset."""

    def get_actor(self) -> Actor:
        if self.actor is not None:
            return self.actor
        return EnvironmentActor(ci_env_var=self.ci_env_var)
