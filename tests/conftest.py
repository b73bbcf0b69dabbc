"""Shared fixtures for kort tests."""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from kort.actor import Actor
from kort.config import OrchestratorConfig, RenderConfig
from kort.manifest import Environment, HelmRelease, KortContext, RemoteChart

FAKE_HELM = """#!/bin/sh
echo "$@" >> "{log}"
if [ "$2" = "{broken_release}" ]; then
  printf '\\377\\376 broken' >&2
  exit 1
fi
out=""
while [ $# -gt 0 ]; do
  if [ "$1" = "--output-dir" ]; then
    out="$2"
  fi
  shift
done
if [ {exit_code} -ne 0 ]; then
  echo "Error: failed to render" >&2
  exit {exit_code}
fi
mkdir -p "$out/chart/templates"
echo "kind: ConfigMap" > "$out/chart/templates/configmap.yaml"
"""


class StaticActor(Actor):
    """An Actor with a fixed identity that tests can change between runs."""

    def __init__(self, ci: bool = False, username: str = "tester") -> None:
        self.ci = ci
        self.username = username

    def is_ci(self) -> bool:
        return self.ci

    def user(self) -> str:
        return self.username


@dataclass
class FakeHelm:
    """A shell script standing in for the helm binary that logs each call."""

    path: Path
    log: Path

    @property
    def calls(self) -> list[str]:
        if not self.log.exists():
            return []
        return self.log.read_text().splitlines()


def make_fake_helm(
    directory: Path, exit_code: int = 0, broken_release: str = ""
) -> FakeHelm:
    """Write a fake helm, optionally failing with garbled output for one release."""
    log = directory / "calls.log"
    path = directory / "helm"
    path.write_text(
        FAKE_HELM.format(log=log, exit_code=exit_code, broken_release=broken_release)
    )
    path.chmod(0o755)
    return FakeHelm(path=path, log=log)


@pytest.fixture(name="fake_helm")
def fake_helm_fixture(tmp_path_factory: Any) -> FakeHelm:
    """Fixture for a helm binary that renders a single manifest."""
    return make_fake_helm(tmp_path_factory.mktemp("fake-helm"))


@pytest.fixture(name="failing_helm")
def failing_helm_fixture(tmp_path_factory: Any) -> FakeHelm:
    """Fixture for a helm binary that always fails."""
    return make_fake_helm(tmp_path_factory.mktemp("failing-helm"), exit_code=1)


@pytest.fixture(name="actor")
def actor_fixture() -> StaticActor:
    return StaticActor()


@pytest.fixture(name="root_dir")
def root_dir_fixture(tmp_path: Path) -> Path:
    """Fixture for the root directory of a context."""
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture(name="make_config")
def make_config_fixture(
    fake_helm: FakeHelm, actor: StaticActor
) -> Callable[..., OrchestratorConfig]:
    """Fixture for building a config that uses the fake helm and static actor."""

    def _make_config(helm: FakeHelm | None = None) -> OrchestratorConfig:
        return OrchestratorConfig(
            render=RenderConfig(helm_bin=str((helm or fake_helm).path), timeout=30),
            actor=actor,
        )

    return _make_config


def remote_release(name: str = "app", **kwargs: Any) -> HelmRelease:
    """Return a release of a remote chart."""
    return HelmRelease(
        name=name,
        namespace=kwargs.pop("namespace", "ns"),
        chart=kwargs.pop("chart", RemoteChart(url="oci://x", version="1.0.0")),
        **kwargs,
    )


def make_context(
    root_dir: Path, *releases: HelmRelease, env: str = "test"
) -> KortContext:
    """Return a context with a single environment."""
    return KortContext(
        environments=[Environment(name=env, helm_releases=list(releases))],
        root_dir=root_dir,
    )
