"""Kort plan action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import Any, cast

from kort.orchestrator import Orchestrator, RenderPlan

from .common import add_context_flags, load_context, make_config
from .format import FORMATTERS

_LOGGER = logging.getLogger(__name__)

FAILED = "FAILED"


def plan_records(plan: RenderPlan) -> list[dict[str, Any]]:
    """Return the plan as records for output formatting."""
    records: list[dict[str, Any]] = [
        {
            "env": item.env_name,
            "name": item.release.name,
            "reason": str(item.reason),
        }
        for item in plan.items
    ]
    for name, error in plan.errors.items():
        records.append({"env": "", "name": name, "reason": f"{FAILED}: {error}"})
    return records


class PlanAction:
    """Show which releases would be rendered."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args: ArgumentParser = cast(
            ArgumentParser,
            subparsers.add_parser(
                "plan",
                help="Show the releases that would be rendered and why",
                description=(
                    "The plan command compares each release against the state "
                    "of its last render without running helm."
                ),
            ),
        )
        add_context_flags(args)
        args.add_argument(
            "--output",
            "-o",
            choices=list(FORMATTERS),
            default="print",
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        context: pathlib.Path,
        helm_bin: str,
        timeout: float,
        ci_env_var: str,
        output: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        kort_context = await load_context(context)
        orchestrator = Orchestrator(
            kort_context, make_config(helm_bin, timeout, ci_env_var)
        )
        plan = await orchestrator.plan()
        records = plan_records(plan)
        if not records:
            print("No releases need rendering")
            return
        FORMATTERS[output]().print(records)
