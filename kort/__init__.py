"""
kort renders helm releases into manifests, only re-rendering what changed.

```python
from pathlib import Path
from kort import render
from kort.manifest import Environment, HelmRelease, KortContext, RemoteChart

context = KortContext(
    environments=[
        Environment(
            name="staging",
            helm_releases=[
                HelmRelease(
                    name="cert-manager",
                    namespace="cert-manager",
                    chart=RemoteChart(
                        url="oci://quay.io/jetstack/charts/cert-manager",
                        version="v1.19.2",
                    ),
                    values_object={"crds": {"enabled": True}},
                ),
            ],
        ),
    ],
    root_dir=Path("."),
)
result = await render(context)
```
"""

from .orchestrator import render

__all__ = [
    "render",
    "manifest",
    "checksum",
    "decision",
    "state",
    "helm",
    "orchestrator",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
