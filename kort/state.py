"""Durable record of the last successful render of each release.

The state is a single JSON document stored at the root of the context:

```json
{
  "environments": [
    {
      "releaseName": "cert-manager",
      "sourceChecksum": "...",
      "targetChecksum": "...",
      "valuesChecksum": "...",
      "renderedBy": "CI"
    }
  ]
}
```

The `environments` key holds release records, the name is kept for
compatibility with existing state files.
"""

import logging
import os
from pathlib import Path
import tempfile

import aiofiles
from aiofiles.os import makedirs, replace
from pydantic import BaseModel, ConfigDict, Field, ValidationError

__all__ = [
    "STATE_FILE",
    "RenderedRelease",
    "RenderedState",
    "load",
    "save",
]

_LOGGER = logging.getLogger(__name__)

STATE_FILE = ".rendered.json"


class RenderedRelease(BaseModel):
    """Checksums of a release at the time it was last rendered."""

    model_config = ConfigDict(populate_by_name=True)

    release_name: str = Field(alias="releaseName")
    source_checksum: str = Field(alias="sourceChecksum")
    target_checksum: str = Field(alias="targetChecksum")
    values_checksum: str = Field(alias="valuesChecksum")
    rendered_by: str = Field(alias="renderedBy")


class RenderedState(BaseModel):
    """All release records, at most one per release name."""

    model_config = ConfigDict(populate_by_name=True)

    releases: list[RenderedRelease] = Field(default_factory=list, alias="environments")

    def get(self, release_name: str) -> RenderedRelease | None:
        """Return the record for the release, if it was rendered before."""
        return next(
            (record for record in self.releases if record.release_name == release_name),
            None,
        )

    def update(self, record: RenderedRelease) -> None:
        """Replace any record for the same release with the new record."""
        self.releases = [
            existing
            for existing in self.releases
            if existing.release_name != record.release_name
        ]
        self.releases.append(record)


def state_path(root_dir: Path) -> Path:
    return root_dir / STATE_FILE


async def load(root_dir: Path) -> RenderedState:
    """Load the state for the root directory.

    A missing or unparsable state file is treated as an empty state.
    """
    path = state_path(root_dir)
    try:
        async with aiofiles.open(str(path)) as state_file:
            content = await state_file.read()
    except FileNotFoundError:
        _LOGGER.info("No state file %s, starting with an empty state", path)
        return RenderedState()
    except (OSError, UnicodeDecodeError) as err:
        _LOGGER.warning("Unable to read state file %s: %s", path, err)
        return RenderedState()
    try:
        return RenderedState.model_validate_json(content)
    except ValidationError as err:
        _LOGGER.warning("Ignoring invalid state file %s: %s", path, err)
        return RenderedState()


def dumps(state: RenderedState) -> str:
    """Serialize the state document."""
    return state.model_dump_json(by_alias=True, indent=2) + "\n"


async def save(root_dir: Path, state: RenderedState) -> None:
    """Replace the state file with the full contents of the state.

    The content is written to a temporary file first so an interrupted
    write leaves the previous state file in place.
    """
    path = state_path(root_dir)
    content = dumps(state)
    await makedirs(str(root_dir), exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f"{STATE_FILE}.", dir=str(root_dir))
    os.close(fd)
    try:
        async with aiofiles.open(tmp_name, mode="w") as state_file:
            await state_file.write(content)
        await replace(tmp_name, str(path))
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    _LOGGER.debug("Wrote %d release records to %s", len(state.releases), path)
