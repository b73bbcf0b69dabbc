"""Flags and helpers shared by kort actions."""

from argparse import ArgumentParser
import logging
import pathlib

from kort.command import DEFAULT_TIMEOUT
from kort.config import OrchestratorConfig, RenderConfig
from kort.exceptions import InputException
from kort.manifest import KortContext, read_context

_LOGGER = logging.getLogger(__name__)

DEFAULT_CONTEXT = "kort.yaml"


def add_context_flags(args: ArgumentParser) -> None:
    """Add flags for selecting the context and configuring helm."""
    args.add_argument(
        "--context",
        "-c",
        type=pathlib.Path,
        default=pathlib.Path(DEFAULT_CONTEXT),
        help="Context file listing the environments and releases to render",
    )
    args.add_argument(
        "--helm-bin",
        type=str,
        default="helm",
        help="The helm executable used to render charts",
    )
    args.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="Seconds a single helm template invocation may run",
    )
    args.add_argument(
        "--ci-env-var",
        type=str,
        default="CI",
        help='Environment variable that marks a CI run when set to "true" or "1"',
    )


async def load_context(context: pathlib.Path) -> KortContext:
    """Read the context file named on the command line."""
    _LOGGER.debug("Reading context %s", context)
    try:
        return await read_context(context)
    except OSError as err:
        raise InputException(f"Unable to read context file {context}: {err}") from err


def make_config(
    helm_bin: str, timeout: float, ci_env_var: str
) -> OrchestratorConfig:
    """Build the run configuration from command line flags."""
    return OrchestratorConfig(
        render=RenderConfig(helm_bin=helm_bin, timeout=timeout),
        ci_env_var=ci_env_var,
    )
