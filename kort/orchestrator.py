"""Orchestrator for kort.

A run happens in two phases:
  - plan: every release in every environment is compared against the stored
    state and the releases that need rendering are collected with a reason
  - apply: each planned release is rendered in order, then the state is
    written back once with the records of every release that succeeded

A failure of one release, while planning or applying, is reported and does not
stop the other releases.
"""

from collections import Counter
from dataclasses import dataclass, field
import logging

from . import state
from .checksum import source_checksum, target_checksum, values_checksum
from .config import OrchestratorConfig
from .decision import Reason, decide
from .exceptions import KortException
from .helm import Helm, clean_stale
from .manifest import HelmRelease, KortContext
from .state import RenderedRelease, RenderedState

__all__ = [
    "Orchestrator",
    "RenderPlan",
    "PlanItem",
    "RenderResult",
    "render",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class PlanItem:
    """A release that needs to be rendered."""

    env_name: str
    release: HelmRelease
    reason: Reason


@dataclass
class RenderPlan:
    """The releases to render in a run."""

    items: list[PlanItem] = field(default_factory=list)
    """Releases to render, in declaration order."""

    unchanged: list[str] = field(default_factory=list)
    """Names of releases that don't need rendering."""

    errors: dict[str, str] = field(default_factory=dict)
    """Releases that could not be planned, with the error message."""


@dataclass
class RenderResult:
    """Outcome of a run."""

    rendered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


class Orchestrator:
    """Plans and applies the render of all releases in a context."""

    def __init__(
        self,
        context: KortContext,
        config: OrchestratorConfig | None = None,
    ) -> None:
        """Initialize the orchestrator."""
        self.context = context
        self.config = config or OrchestratorConfig()
        self.root_dir = context.root_dir.resolve()
        self.actor = self.config.get_actor()
        self.helm = Helm(self.config.render)
        self.state: RenderedState | None = None

    def _check_duplicates(self) -> None:
        names = Counter(
            release.name
            for env in self.context.environments
            for release in env.helm_releases
        )
        for name, count in names.items():
            if count > 1:
                _LOGGER.warning(
                    "HelmRelease %s is declared %d times, its render records will "
                    "overwrite each other",
                    name,
                    count,
                )

    async def plan(self) -> RenderPlan:
        """Load the stored state and decide which releases to render."""
        self.state = await state.load(self.root_dir)
        self._check_duplicates()
        plan = RenderPlan()
        for env in self.context.environments:
            for release in env.helm_releases:
                try:
                    decision = await decide(
                        release,
                        self.root_dir,
                        env.name,
                        self.state.get(release.name),
                        self.actor,
                    )
                except KortException as err:
                    _LOGGER.error(
                        "Unable to plan HelmRelease %s (%s): %s",
                        release.name,
                        env.name,
                        err,
                    )
                    plan.errors[release.name] = str(err)
                    continue
                if not decision.needs_render:
                    _LOGGER.info(
                        "HelmRelease %s (%s): %s",
                        release.name,
                        env.name,
                        decision.reason,
                    )
                    plan.unchanged.append(release.name)
                    continue
                _LOGGER.info(
                    "HelmRelease %s (%s) needs render: %s",
                    release.name,
                    env.name,
                    decision.reason,
                )
                plan.items.append(PlanItem(env.name, release, decision.reason))
        return plan

    async def _record(self, release: HelmRelease) -> RenderedRelease:
        return RenderedRelease(
            release_name=release.name,
            source_checksum=await source_checksum(release, self.root_dir),
            target_checksum=target_checksum(release),
            values_checksum=await values_checksum(release, self.root_dir),
            rendered_by=self.actor.name(),
        )

    async def apply(self, plan: RenderPlan) -> RenderResult:
        """Render every planned release and save the state once.

        The stored state is loaded here if the plan was not made by this
        orchestrator so existing records are kept.
        """
        if self.state is None:
            self.state = await state.load(self.root_dir)
        result = RenderResult(
            failed=list(plan.errors),
            unchanged=list(plan.unchanged),
        )
        await clean_stale(self.root_dir)
        for item in plan.items:
            release = item.release
            if not await self.helm.render(release, item.env_name, self.root_dir):
                result.failed.append(release.name)
                continue
            try:
                record = await self._record(release)
            except KortException as err:
                _LOGGER.error(
                    "Unable to record render of HelmRelease %s: %s", release.name, err
                )
                result.failed.append(release.name)
                continue
            self.state.update(record)
            result.rendered.append(release.name)
        await state.save(self.root_dir, self.state)
        _LOGGER.info(
            "Rendered %d of %d planned releases (%d failed, %d unchanged)",
            len(result.rendered),
            len(plan.items),
            len(result.failed),
            len(result.unchanged),
        )
        return result

    async def run(self) -> RenderResult:
        """Plan and apply the render of all releases."""
        return await self.apply(await self.plan())


async def render(
    context: KortContext, config: OrchestratorConfig | None = None
) -> RenderResult:
    """Render every release in the context that changed since its last render."""
    return await Orchestrator(context, config).run()
