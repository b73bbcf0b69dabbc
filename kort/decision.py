"""Decides whether a release needs to be rendered again.

The checks run in a fixed priority order and the first one that matches
determines the reason reported for the release:

  1. The release was never rendered
  2. The rendered output directory is missing
  3. The chart source changed
  4. The release namespace or name changed
  5. The values changed
  6. Running in CI but the release was last rendered by a user
"""

from dataclasses import dataclass
from enum import StrEnum
import logging
from pathlib import Path

from aiofiles.ospath import isdir

from .actor import CI_ACTOR, Actor
from .checksum import source_checksum, target_checksum, values_checksum
from .manifest import HelmRelease, output_path
from .state import RenderedRelease

__all__ = [
    "Reason",
    "Decision",
    "decide",
]

_LOGGER = logging.getLogger(__name__)


class Reason(StrEnum):
    """Why a release is or is not rendered."""

    NEW_RELEASE = "NEW_RELEASE"
    TARGET_MISSING = "TARGET_MISSING"
    SOURCE_CHANGED = "SOURCE_CHANGED"
    TARGET_CHANGED = "TARGET_CHANGED"
    VALUES_CHANGED = "VALUES_CHANGED"
    CI_USER_MISMATCH = "CI_USER_MISMATCH"
    NO_CHANGE = "NO_CHANGE"


@dataclass(frozen=True)
class Decision:
    """The outcome of comparing a release against its last render."""

    reason: Reason

    @property
    def needs_render(self) -> bool:
        return self.reason != Reason.NO_CHANGE


async def decide(
    release: HelmRelease,
    root_dir: Path,
    env_name: str,
    prior: RenderedRelease | None,
    actor: Actor,
) -> Decision:
    """Return the reason the release must be rendered, or NO_CHANGE."""
    if prior is None:
        return Decision(Reason.NEW_RELEASE)
    if not await isdir(str(output_path(root_dir, env_name, release.name))):
        return Decision(Reason.TARGET_MISSING)
    if await source_checksum(release, root_dir) != prior.source_checksum:
        return Decision(Reason.SOURCE_CHANGED)
    if target_checksum(release) != prior.target_checksum:
        return Decision(Reason.TARGET_CHANGED)
    if await values_checksum(release, root_dir) != prior.values_checksum:
        return Decision(Reason.VALUES_CHANGED)
    if actor.is_ci() and prior.rendered_by != CI_ACTOR:
        _LOGGER.debug(
            "HelmRelease %s was rendered by %s, rendering in CI",
            release.name,
            prior.rendered_by,
        )
        return Decision(Reason.CI_USER_MISMATCH)
    return Decision(Reason.NO_CHANGE)
