"""Library for running `helm template` and publishing the rendered manifests.

Each release is rendered into a fresh temporary directory created inside the
output directory, then moved into `output/<env>/<release>` with a rename. The
temporary directory and the final path are always on the same filesystem so
the published directory is either the previous render or the new one, never
a partially written mix.

```python
from pathlib import Path
from kort.helm import Helm
from kort.manifest import HelmRelease, RemoteChart

release = HelmRelease(
    name="podinfo",
    namespace="podinfo",
    chart=RemoteChart(url="oci://ghcr.io/stefanprodan/charts/podinfo", version="6.5.4"),
    values_object={"replicaCount": 2},
)
helm = Helm()
if not await helm.render(release, "staging", Path(".")):
    print("Render failed")
```
"""

import logging
from pathlib import Path
import shutil
import tempfile

from aiofiles.os import listdir, makedirs, rename
from aiofiles.ospath import exists, isdir

from . import command
from .checksum import canonical_json
from .config import RenderConfig
from .exceptions import HelmException, KortException, PublishException
from .manifest import OUTPUT_DIR, HelmRelease, LocalChart, RemoteChart, output_path

__all__ = [
    "Helm",
    "template_args",
    "publish",
    "clean_stale",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
TMP_PREFIX = ".kort-tmp-"


def chart_reference(release: HelmRelease, root_dir: Path) -> str:
    """Return the chart argument used for the helm template command."""
    if isinstance(release.chart, LocalChart):
        return str(release.chart.local_path(root_dir))
    return release.chart.url


def template_args(
    release: HelmRelease,
    root_dir: Path,
    output_dir: Path,
    helm_bin: str = HELM_BIN,
) -> list[str]:
    """Helm template CLI arguments that render the release into output_dir."""
    args = [
        helm_bin,
        "template",
        release.name,
        chart_reference(release, root_dir),
    ]
    if isinstance(release.chart, RemoteChart):
        args.extend(["--version", release.chart.version])
    args.extend(
        [
            "--namespace",
            release.namespace,
            "--output-dir",
            str(output_dir),
        ]
    )
    for key, value in (release.values_object or {}).items():
        args.extend(["--set-json", f"{key}={canonical_json(value)}"])
    for value_file in release.value_files:
        args.extend(["--values", str(root_dir / value_file)])
    return args


async def publish(rendered_dir: Path, target: Path, release_name: str) -> None:
    """Replace the target directory with the rendered directory."""
    try:
        await makedirs(str(target.parent), exist_ok=True)
        if await exists(str(target)):
            shutil.rmtree(target)
        await rename(str(rendered_dir), str(target))
    except OSError as err:
        raise PublishException(release_name, str(err)) from err


async def clean_stale(root_dir: Path) -> None:
    """Remove temporary render directories left behind by an interrupted run."""
    staging = root_dir / OUTPUT_DIR
    if not await isdir(str(staging)):
        return
    for name in await listdir(str(staging)):
        if name.startswith(TMP_PREFIX):
            _LOGGER.info("Removing stale render directory %s", staging / name)
            shutil.rmtree(staging / name, ignore_errors=True)


class Helm:
    """Renders releases with helm and publishes the output."""

    def __init__(self, config: RenderConfig | None = None) -> None:
        """Initialize Helm."""
        self._config = config or RenderConfig()

    def template_args(
        self, release: HelmRelease, root_dir: Path, output_dir: Path
    ) -> list[str]:
        """Return the full helm command line for the release."""
        args = template_args(release, root_dir, output_dir, self._config.helm_bin)
        args.extend(self._config.extra_args)
        return args

    async def render(self, release: HelmRelease, env_name: str, root_dir: Path) -> bool:
        """Render the release and publish it, returning True on success.

        A failure is logged and leaves any previously published output in place.
        """
        root_dir = root_dir.resolve()
        target = output_path(root_dir, env_name, release.name)
        staging = root_dir / OUTPUT_DIR
        try:
            await makedirs(str(staging), exist_ok=True)
            tmp_dir = Path(tempfile.mkdtemp(prefix=TMP_PREFIX, dir=staging))
        except OSError as err:
            _LOGGER.error(
                "Unable to create render directory for HelmRelease %s: %s",
                release.name,
                err,
            )
            return False

        try:
            cmd = command.Command(
                self.template_args(release, root_dir, tmp_dir),
                cwd=root_dir,
                exc=HelmException,
                timeout=self._config.timeout,
            )
            await command.run(cmd)
            await publish(tmp_dir, target, release.name)
        except KortException as err:
            _LOGGER.error(
                "Failed to render HelmRelease %s (%s): %s", release.name, env_name, err
            )
            shutil.rmtree(tmp_dir, ignore_errors=True)
            return False
        _LOGGER.info(
            "Rendered HelmRelease %s to %s", release.name, command.format_path(target)
        )
        return True
