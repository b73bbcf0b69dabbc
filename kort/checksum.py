"""Library for computing the checksums that identify what a release renders.

Three checksums are computed for each release:
  - source: the chart reference and version, or the content of a local chart
  - target: the namespace and name the release is deployed as
  - values: the inline values and the content of any values files

Each is a hex encoded SHA-256 digest. A local chart or values file that can't
be read is skipped with a warning so the release still gets a checksum.
"""

import datetime
import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
from aiofiles.os import listdir
from aiofiles.ospath import isdir, isfile

from .exceptions import ChecksumException
from .manifest import HelmRelease, LocalChart, RemoteChart

__all__ = [
    "canonical_json",
    "source_checksum",
    "target_checksum",
    "values_checksum",
]

_LOGGER = logging.getLogger(__name__)

CHART_MANIFEST = "Chart.yaml"
CHART_TEMPLATES = "templates"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_json(obj: Any) -> str:
    """Serialize the object as JSON with keys recursively sorted.

    Dates and timestamps, which YAML produces for unquoted values such as
    2024-01-01, are written as ISO 8601 strings the way helm reads them.
    """
    try:
        return json.dumps(
            obj, sort_keys=True, separators=(",", ":"), default=_json_default
        )
    except (TypeError, ValueError) as err:
        raise ChecksumException(f"Values can't be serialized as JSON: {err}") from err


def _digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


async def _read_bytes(path: Path) -> bytes:
    async with aiofiles.open(str(path), mode="rb") as input_file:
        return await input_file.read()


async def _update_with_file(hasher: Any, label: str, path: Path) -> bool:
    """Add the label and file content to the hash, returning False if unreadable."""
    try:
        content = await _read_bytes(path)
    except OSError as err:
        _LOGGER.warning("Skipping unreadable file %s: %s", path, err)
        return False
    hasher.update(f"{label}:".encode("utf-8"))
    hasher.update(content)
    return True


async def _hash_templates(hasher: Any, chart_dir: Path, directory: Path) -> None:
    """Hash every file under the directory, visiting entries in sorted order."""
    try:
        names = sorted(await listdir(str(directory)))
    except OSError as err:
        _LOGGER.warning("Skipping unreadable template directory %s: %s", directory, err)
        return
    for name in names:
        path = directory / name
        if await isdir(str(path)):
            await _hash_templates(hasher, chart_dir, path)
            continue
        label = path.relative_to(chart_dir).as_posix()
        if await _update_with_file(hasher, label, path):
            hasher.update(b"\n")


async def _local_chart_checksum(chart_dir: Path) -> str:
    hasher = hashlib.sha256()
    manifest = chart_dir / CHART_MANIFEST
    if await isfile(str(manifest)):
        if await _update_with_file(hasher, CHART_MANIFEST, manifest):
            hasher.update(b"\n")
    else:
        _LOGGER.warning("Local chart %s has no %s", chart_dir, CHART_MANIFEST)
    templates = chart_dir / CHART_TEMPLATES
    if await isdir(str(templates)):
        await _hash_templates(hasher, chart_dir, templates)
    else:
        _LOGGER.warning(
            "Local chart %s has no %s directory", chart_dir, CHART_TEMPLATES
        )
    return hasher.hexdigest()


async def source_checksum(release: HelmRelease, root_dir: Path) -> str:
    """Return the checksum of the chart source of the release."""
    chart = release.chart
    if isinstance(chart, LocalChart):
        return await _local_chart_checksum(chart.local_path(root_dir))
    if isinstance(chart, RemoteChart):
        if not chart.version:
            raise ChecksumException(
                f"HelmRelease {release.name} chart {chart.url} is missing a version"
            )
        return _digest(f"{chart.url}:{chart.version}")
    raise ChecksumException(
        f"HelmRelease {release.name} has unsupported chart source {chart!r}"
    )


def target_checksum(release: HelmRelease) -> str:
    """Return the checksum of where the release is deployed."""
    return _digest(f"{release.namespace}:{release.name}")


def value_file_label(value_file: str, root_dir: Path) -> str:
    """Return the path of a values file as written into the values checksum."""
    path = (root_dir / value_file).resolve()
    if path.is_relative_to(root_dir.resolve()):
        return path.relative_to(root_dir.resolve()).as_posix()
    return path.as_posix()


async def values_checksum(release: HelmRelease, root_dir: Path) -> str:
    """Return the checksum of the inline values and values files of the release."""
    hasher = hashlib.sha256()
    hasher.update(canonical_json(release.values_object or {}).encode("utf-8"))
    for value_file in release.value_files:
        path = root_dir / value_file
        if not await isfile(str(path)):
            _LOGGER.warning(
                "Values file %s for HelmRelease %s not found, skipping",
                value_file,
                release.name,
            )
            continue
        await _update_with_file(hasher, value_file_label(value_file, root_dir), path)
    return hasher.hexdigest()
