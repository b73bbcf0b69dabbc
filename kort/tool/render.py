"""Kort render action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import Any, cast

from kort.orchestrator import Orchestrator

from .common import add_context_flags, load_context, make_config

_LOGGER = logging.getLogger(__name__)


class RenderAction:
    """Render all releases that changed since their last render."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args: ArgumentParser = cast(
            ArgumentParser,
            subparsers.add_parser(
                "render",
                help="Render changed releases into the output directory",
                description=(
                    "The render command compares each release against the state "
                    "of its last render and runs helm template for the releases "
                    "that changed."
                ),
            ),
        )
        add_context_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        context: pathlib.Path,
        helm_bin: str,
        timeout: float,
        ci_env_var: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        kort_context = await load_context(context)
        orchestrator = Orchestrator(
            kort_context, make_config(helm_bin, timeout, ci_env_var)
        )
        result = await orchestrator.run()
        print(
            f"Rendered {len(result.rendered)} releases, "
            f"{len(result.unchanged)} unchanged, {len(result.failed)} failed"
        )
        for name in result.failed:
            print(f"Failed: {name}", file=sys.stderr)
        if not result.success:
            sys.exit(1)
