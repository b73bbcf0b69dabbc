"""Tests for the orchestrator."""

from collections.abc import Callable
import json
import shutil
from pathlib import Path
from typing import Any

from kort.config import OrchestratorConfig
from kort.decision import Reason
from kort.helm import TMP_PREFIX
from kort.manifest import (
    Environment,
    HelmRelease,
    KortContext,
    LocalChart,
    RemoteChart,
    read_context,
)
from kort.orchestrator import Orchestrator, RenderPlan, render
from kort.state import STATE_FILE

from .conftest import (
    FakeHelm,
    StaticActor,
    make_context,
    make_fake_helm,
    remote_release,
)

MakeConfig = Callable[..., OrchestratorConfig]


def _read_state(root_dir: Path) -> list[dict[str, Any]]:
    return json.loads((root_dir / STATE_FILE).read_text())["environments"]


async def test_first_render(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test the first render creates the state file and the output."""
    context = make_context(root_dir, remote_release(values_object={"a": 1}))
    orchestrator = Orchestrator(context, make_config())

    plan = await orchestrator.plan()
    assert [(item.env_name, item.release.name, item.reason) for item in plan.items] == [
        ("test", "app", Reason.NEW_RELEASE)
    ]
    result = await orchestrator.apply(plan)
    assert result.rendered == ["app"]
    assert result.success

    records = _read_state(root_dir)
    assert len(records) == 1
    assert records[0]["releaseName"] == "app"
    assert records[0]["renderedBy"] == "tester"
    assert records[0]["sourceChecksum"]
    assert records[0]["targetChecksum"]
    assert records[0]["valuesChecksum"]
    assert (root_dir / "output/test/app/chart/templates/configmap.yaml").exists()
    assert len(fake_helm.calls) == 1
    assert "--set-json a=1" in fake_helm.calls[0]


async def test_render_unchanged(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test a second render without changes does not invoke helm."""
    context = make_context(root_dir, remote_release(values_object={"foo": "bar"}))
    await render(context, make_config())
    first = _read_state(root_dir)

    result = await render(context, make_config())
    assert result.rendered == []
    assert result.unchanged == ["app"]
    assert len(fake_helm.calls) == 1
    assert _read_state(root_dir) == first


async def test_values_change(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test changing values renders only that release again."""
    release = remote_release(values_object={"foo": "bar"})
    other = remote_release(name="other")
    context = make_context(root_dir, release, other)
    await render(context, make_config())
    first = {record["releaseName"]: record for record in _read_state(root_dir)}
    assert len(fake_helm.calls) == 2

    release.values_object = {"foo": "baz"}
    plan = await Orchestrator(context, make_config()).plan()
    assert [(item.release.name, item.reason) for item in plan.items] == [
        ("app", Reason.VALUES_CHANGED)
    ]
    result = await render(context, make_config())
    assert result.rendered == ["app"]
    assert len(fake_helm.calls) == 3

    second = {record["releaseName"]: record for record in _read_state(root_dir)}
    assert second["other"] == first["other"]
    assert second["app"]["valuesChecksum"] != first["app"]["valuesChecksum"]
    assert second["app"]["sourceChecksum"] == first["app"]["sourceChecksum"]
    assert second["app"]["targetChecksum"] == first["app"]["targetChecksum"]


async def test_ci_takes_over(
    root_dir: Path,
    fake_helm: FakeHelm,
    actor: StaticActor,
    make_config: MakeConfig,
) -> None:
    """Test CI renders once a release last rendered by a user."""
    context = make_context(root_dir, remote_release())
    await render(context, make_config())
    assert _read_state(root_dir)[0]["renderedBy"] == "tester"

    actor.ci = True
    plan = await Orchestrator(context, make_config()).plan()
    assert [item.reason for item in plan.items] == [Reason.CI_USER_MISMATCH]
    await render(context, make_config())
    assert _read_state(root_dir)[0]["renderedBy"] == "CI"
    assert len(fake_helm.calls) == 2

    await render(context, make_config())
    assert len(fake_helm.calls) == 2


async def test_value_file_change(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test adding and changing a values file renders again."""
    values_file = root_dir / "values.yaml"
    values_file.write_text("replicas: 1\n")
    release = remote_release()
    context = make_context(root_dir, release)
    await render(context, make_config())

    release.value_files = ["missing.yaml"]
    await render(context, make_config())
    assert len(fake_helm.calls) == 1

    release.value_files = ["missing.yaml", "values.yaml"]
    await render(context, make_config())
    assert len(fake_helm.calls) == 2
    assert f"--values {root_dir.resolve() / 'values.yaml'}" in fake_helm.calls[-1]

    values_file.write_text("replicas: 2\n")
    await render(context, make_config())
    assert len(fake_helm.calls) == 3

    await render(context, make_config())
    assert len(fake_helm.calls) == 3


async def test_target_missing(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test a deleted output directory is rendered again."""
    context = make_context(root_dir, remote_release())
    await render(context, make_config())
    shutil.rmtree(root_dir / "output/test/app")

    plan = await Orchestrator(context, make_config()).plan()
    assert [item.reason for item in plan.items] == [Reason.TARGET_MISSING]
    await render(context, make_config())
    assert len(fake_helm.calls) == 2
    assert (root_dir / "output/test/app").exists()


async def test_render_failure_keeps_record(
    root_dir: Path,
    fake_helm: FakeHelm,
    failing_helm: FakeHelm,
    make_config: MakeConfig,
) -> None:
    """Test a failed render keeps the record and output of the last render."""
    release = remote_release(values_object={"foo": "bar"})
    context = make_context(root_dir, release)
    await render(context, make_config())
    first = _read_state(root_dir)

    release.values_object = {"foo": "baz"}
    result = await render(context, make_config(failing_helm))
    assert result.failed == ["app"]
    assert not result.success
    assert len(failing_helm.calls) == 1
    assert _read_state(root_dir) == first
    assert (root_dir / "output/test/app/chart/templates/configmap.yaml").exists()
    assert sorted(path.name for path in (root_dir / "output").iterdir()) == ["test"]

    result = await render(context, make_config())
    assert result.rendered == ["app"]


async def test_planning_error_is_isolated(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test a release that can't be planned doesn't stop the others."""
    broken = remote_release(name="broken")
    context = make_context(root_dir, broken, remote_release())
    await render(context, make_config())
    assert len(fake_helm.calls) == 2

    broken.chart = RemoteChart(url="oci://x", version="")
    broken.values_object = {"changed": True}
    plan = await Orchestrator(context, make_config()).plan()
    assert list(plan.errors) == ["broken"]
    assert plan.unchanged == ["app"]
    result = await render(context, make_config())
    assert result.failed == ["broken"]
    assert result.unchanged == ["app"]
    assert len(fake_helm.calls) == 2
    assert {record["releaseName"] for record in _read_state(root_dir)} == {
        "broken",
        "app",
    }


async def test_multiple_environments(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test each environment renders into its own directory."""
    context = KortContext(
        environments=[
            Environment(name="staging", helm_releases=[remote_release("app-staging")]),
            Environment(name="prod", helm_releases=[remote_release("app-prod")]),
        ],
        root_dir=root_dir,
    )
    result = await render(context, make_config())
    assert result.rendered == ["app-staging", "app-prod"]
    assert (root_dir / "output/staging/app-staging").exists()
    assert (root_dir / "output/prod/app-prod").exists()
    assert [record["releaseName"] for record in _read_state(root_dir)] == [
        "app-staging",
        "app-prod",
    ]


async def test_local_chart(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test a local chart is rendered again when a template changes."""
    chart_dir = root_dir / "charts/my-local-app"
    (chart_dir / "templates").mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text("name: my-local-app\n")
    (chart_dir / "templates/deployment.yaml").write_text("replicas: 1\n")
    release = HelmRelease(
        name="my-local-app",
        namespace="default",
        chart=LocalChart(path="charts/my-local-app"),
    )
    context = make_context(root_dir, release)
    await render(context, make_config())
    assert len(fake_helm.calls) == 1
    assert "--version" not in fake_helm.calls[0]
    assert str(chart_dir.resolve()) in fake_helm.calls[0]

    await render(context, make_config())
    assert len(fake_helm.calls) == 1

    (chart_dir / "templates/deployment.yaml").write_text("replicas: 2\n")
    plan = await Orchestrator(context, make_config()).plan()
    assert [item.reason for item in plan.items] == [Reason.SOURCE_CHANGED]


async def test_stale_render_directories_removed(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test render directories left by an interrupted run are removed."""
    stale = root_dir / "output" / f"{TMP_PREFIX}crashed"
    stale.mkdir(parents=True)
    await render(make_context(root_dir, remote_release()), make_config())
    assert not stale.exists()


async def test_empty_context(root_dir: Path, make_config: MakeConfig) -> None:
    """Test a context without releases writes an empty state."""
    result = await render(make_context(root_dir), make_config())
    assert result.rendered == []
    assert _read_state(root_dir) == []


async def test_duplicate_release_names(
    root_dir: Path, make_config: MakeConfig, caplog: Any
) -> None:
    """Test a release name used in two environments is reported."""
    context = KortContext(
        environments=[
            Environment(name="staging", helm_releases=[remote_release()]),
            Environment(name="prod", helm_releases=[remote_release()]),
        ],
        root_dir=root_dir,
    )
    await Orchestrator(context, make_config()).plan()
    assert "HelmRelease app is declared 2 times" in caplog.text


async def test_date_values(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test unquoted YAML dates in values render like any other value."""
    context_file = root_dir / "kort.yaml"
    context_file.write_text(
        """\
environments:
- name: test
  helmReleases:
  - name: ok
    namespace: ns
    chart: oci://x
    version: 1.0.0
  - name: dated
    namespace: ns
    chart: oci://x
    version: 1.0.0
    valuesObject:
      startDate: 2024-01-01
"""
    )
    context = await read_context(context_file)
    result = await render(context, make_config())
    assert result.rendered == ["ok", "dated"]
    assert '--set-json startDate="2024-01-01"' in fake_helm.calls[1]
    assert {record["releaseName"] for record in _read_state(root_dir)} == {
        "ok",
        "dated",
    }

    result = await render(context, make_config())
    assert result.unchanged == ["ok", "dated"]


async def test_unserializable_values_are_isolated(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test values that can't be serialized fail only their release."""
    context = make_context(
        root_dir,
        remote_release(name="ok"),
        remote_release(name="tagged", values_object={"tags": {"a", "b"}}),
    )
    result = await render(context, make_config())
    assert result.rendered == ["ok"]
    assert result.failed == ["tagged"]
    assert [record["releaseName"] for record in _read_state(root_dir)] == ["ok"]


async def test_garbled_helm_error_is_isolated(
    root_dir: Path, tmp_path: Path, make_config: MakeConfig
) -> None:
    """Test helm failing with output that isn't UTF-8 fails only its release."""
    helm = make_fake_helm(tmp_path, broken_release="broken")
    context = make_context(
        root_dir,
        remote_release(name="first"),
        remote_release(name="broken"),
        remote_release(name="last"),
    )
    result = await render(context, make_config(helm))
    assert result.rendered == ["first", "last"]
    assert result.failed == ["broken"]
    assert len(helm.calls) == 3
    assert {record["releaseName"] for record in _read_state(root_dir)} == {
        "first",
        "last",
    }
    assert not (root_dir / "output/test/broken").exists()


async def test_apply_without_plan_keeps_state(
    root_dir: Path, fake_helm: FakeHelm, make_config: MakeConfig
) -> None:
    """Test applying a plan from elsewhere keeps the stored records."""
    context = make_context(root_dir, remote_release())
    await render(context, make_config())
    first = _read_state(root_dir)

    result = await Orchestrator(context, make_config()).apply(RenderPlan())
    assert result.success
    assert _read_state(root_dir) == first
