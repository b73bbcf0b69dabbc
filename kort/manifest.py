"""Representation of the releases declared for each environment.

A context may be built directly in code or loaded from a YAML context file
that lists the environments and the helm releases within each of them.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from .exceptions import InputException

__all__ = [
    "read_context",
    "KortContext",
    "Environment",
    "HelmRelease",
    "RemoteChart",
    "LocalChart",
]

_LOGGER = logging.getLogger(__name__)


LOCAL_CHART_PREFIX = "file://"
OUTPUT_DIR = "output"


@dataclass(frozen=True)
class RemoteChart:
    """A chart fetched from a repository or registry at a specific version."""

    url: str
    """The chart reference passed to helm e.g. oci://registry/chart."""

    version: str
    """The version of the chart."""

    @property
    def reference(self) -> str:
        return self.url


@dataclass(frozen=True)
class LocalChart:
    """A chart read from a local directory, which is always unversioned."""

    path: str
    """Path to the chart directory, relative paths are from the context root."""

    @property
    def reference(self) -> str:
        return f"{LOCAL_CHART_PREFIX}{self.path}"

    def local_path(self, root_dir: Path) -> Path:
        """Return the chart directory resolved against the root directory."""
        return root_dir / self.path


def parse_chart(chart: Any, version: Any) -> RemoteChart | LocalChart:
    """Parse a chart reference and optional version into a chart source.

    The version must be a string, a YAML number such as 1.10 would otherwise
    be read as 1.1 and has to be quoted.
    """
    if not isinstance(chart, str):
        raise InputException(f"Chart reference must be a string (got {chart!r})")
    if version is not None and not isinstance(version, str):
        raise InputException(
            f"Chart {chart} version must be a quoted string (got {version!r})"
        )
    if chart.startswith(LOCAL_CHART_PREFIX):
        if version is not None:
            raise InputException(
                f"Local chart {chart} must not specify a version (got '{version}')"
            )
        if not (path := chart.removeprefix(LOCAL_CHART_PREFIX)):
            raise InputException(f"Local chart {chart} is missing a path")
        return LocalChart(path=path)
    if not version:
        raise InputException(f"Remote chart {chart} must specify a version")
    return RemoteChart(url=chart, version=version)


@dataclass
class HelmRelease:
    """A helm chart instantiated with values in a namespace."""

    name: str
    """The name of the release."""

    namespace: str
    """The namespace the release is installed into."""

    chart: RemoteChart | LocalChart
    """The source of the chart."""

    values_object: dict[str, Any] | None = None
    """Inline values for the chart."""

    value_files: list[str] = field(default_factory=list)
    """Values files, relative to the context root, applied in order."""

    @property
    def version(self) -> str | None:
        """Return the chart version, which only remote charts have."""
        if isinstance(self.chart, RemoteChart):
            return self.chart.version
        return None

    @property
    def is_local(self) -> bool:
        return isinstance(self.chart, LocalChart)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "HelmRelease":
        """Parse a HelmRelease from a raw release definition."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid HelmRelease must be a mapping: {doc!r}")
        if not (name := doc.get("name")):
            raise InputException(f"Invalid HelmRelease missing name: {doc}")
        if not (namespace := doc.get("namespace")):
            raise InputException(f"Invalid HelmRelease {name} missing namespace")
        if not (chart := doc.get("chart")):
            raise InputException(f"Invalid HelmRelease {name} missing chart")
        values_object = doc.get("valuesObject")
        if values_object is not None and not isinstance(values_object, dict):
            raise InputException(
                f"Invalid HelmRelease {name} valuesObject must be a mapping"
            )
        value_files = doc.get("valueFiles") or []
        if not isinstance(value_files, list):
            raise InputException(
                f"Invalid HelmRelease {name} valueFiles must be a list"
            )
        return cls(
            name=name,
            namespace=namespace,
            chart=parse_chart(chart, doc.get("version")),
            values_object=values_object,
            value_files=[str(value_file) for value_file in value_files],
        )


@dataclass
class Environment:
    """A named group of releases rendered together."""

    name: str
    """The name of the environment, used in the output path."""

    helm_releases: list[HelmRelease] = field(default_factory=list)
    """The releases in this environment."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Environment":
        """Parse an Environment from a raw environment definition."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid Environment must be a mapping: {doc!r}")
        if not (name := doc.get("name")):
            raise InputException(f"Invalid Environment missing name: {doc}")
        releases = doc.get("helmReleases") or []
        if not isinstance(releases, list):
            raise InputException(
                f"Invalid Environment {name} helmReleases must be a list"
            )
        return cls(
            name=name,
            helm_releases=[HelmRelease.parse_doc(release) for release in releases],
        )


@dataclass
class KortContext:
    """All environments rendered in a single run and the root they render into."""

    environments: list[Environment]
    """The environments to render."""

    root_dir: Path
    """Directory holding the state file, value files and the output directory."""

    def output_path(self, env_name: str, release_name: str) -> Path:
        return output_path(self.root_dir, env_name, release_name)


def output_path(root_dir: Path, env_name: str, release_name: str) -> Path:
    """Return the directory that holds the rendered manifests of a release."""
    return root_dir / OUTPUT_DIR / env_name / release_name


async def read_context(context_path: Path) -> KortContext:
    """Read a context file from disk.

    The root directory defaults to the directory containing the file.
    """
    async with aiofiles.open(str(context_path)) as context_file:
        content = await context_file.read()
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(
            f"Unable to parse context file {context_path}: {err}"
        ) from err
    if not isinstance(doc, dict):
        raise InputException(f"Invalid context file {context_path}: expected a mapping")
    environments = doc.get("environments") or []
    if not isinstance(environments, list):
        raise InputException(
            f"Invalid context file {context_path}: environments must be a list"
        )
    root_dir = context_path.parent / doc.get("rootDir", ".")
    _LOGGER.debug("Loaded %d environments from %s", len(environments), context_path)
    return KortContext(
        environments=[Environment.parse_doc(env) for env in environments],
        root_dir=root_dir.resolve(),
    )
