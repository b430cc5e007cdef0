"""Container image recipe rendering.

``render_dockerfile`` depends only on the image policy, the revision and
the binary path, so every run of one revision renders the same bytes.
The build timestamp reaches the image label through the
``BUILD_TIMESTAMP`` build argument (see ``build_args``).
"""

from __future__ import annotations

import json
from pathlib import PurePosixPath

from envoyforge.models.config import ImagePolicy, PipelineRun

HELPER_STAGE = "helper"
TIMESTAMP_ARG = "BUILD_TIMESTAMP"


def image_labels(policy: ImagePolicy, run: PipelineRun) -> dict[str, str]:
    """Metadata attached to the image, in emission order."""
    labels: dict[str, str] = {}
    if policy.source_url:
        labels["org.opencontainers.image.source"] = policy.source_url
    labels["org.opencontainers.image.description"] = policy.description
    labels["custom.envoy.version"] = run.revision
    labels["custom.build.method"] = policy.build_method
    labels["custom.build.timestamp"] = f"${TIMESTAMP_ARG}"
    return labels


def build_args(run: PipelineRun) -> dict[str, str]:
    """Values passed to the image builder as ``--build-arg``."""
    return {TIMESTAMP_ARG: run.build_timestamp}


def render_dockerfile(
    policy: ImagePolicy,
    run: PipelineRun,
    binary_path: PurePosixPath | str,
) -> str:
    """Render the image recipe.

    ``binary_path`` is relative to the image build context.
    """
    binary = PurePosixPath(binary_path).as_posix()
    packages = " \\\n    ".join(policy.runtime_packages)

    lines = [
        f"FROM {policy.helper_image} AS {HELPER_STAGE}",
        f"FROM {policy.base_image}",
        f"ARG {TIMESTAMP_ARG}",
        "",
        "# Runtime dependencies only",
        "RUN apt-get update && apt-get install -y --no-install-recommends \\",
        f"    {packages} \\",
        "    && rm -rf /var/lib/apt/lists/*",
        "",
        f"COPY {binary} {policy.install_path}",
        f"COPY --from={HELPER_STAGE} {policy.entrypoint} {policy.entrypoint}",
        "",
        f"RUN chmod +x {policy.install_path} {policy.entrypoint} && \\",
        f"    groupadd --gid {policy.gid} {policy.user} && \\",
        f"    useradd --uid {policy.uid} --gid {policy.user} "
        f"--shell /bin/false --home-dir /tmp {policy.user}",
        "",
    ]
    lines.extend(
        f"LABEL {key}={json.dumps(value)}"
        for key, value in image_labels(policy, run).items()
    )
    lines.extend(
        [
            "",
            "EXPOSE " + " ".join(str(port) for port in policy.ports),
            f"USER {policy.user}",
            "",
            f"ENTRYPOINT {json.dumps([policy.entrypoint])}",
            f"CMD {json.dumps(policy.command)}",
        ]
    )
    return "\n".join(lines) + "\n"
