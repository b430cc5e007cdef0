"""Bazel rc file rendering.

``render_bazelrc`` is a pure function of the build policy: identical
policies always produce byte-identical files.
"""

from __future__ import annotations

from envoyforge.models.config import BuildPolicy


def _format_number(value: float) -> str:
    return f"{value:.1f}" if isinstance(value, float) else str(value)


def bazelrc_sections(policy: BuildPolicy) -> list[tuple[str, list[str]]]:
    """Return the rc file as (heading, flags) pairs in emission order."""
    return [
        (
            "Core features",
            [f"--define={define}" for define in policy.enabled_defines]
            + [
                f"--compilation_mode={policy.compilation_mode}",
                f"--config={policy.stdlib_config}",
            ],
        ),
        (
            "Disabled features",
            [f"--define={feature}=disabled" for feature in policy.disabled_features],
        ),
        (
            "System compiler",
            [f"--action_env=CC={policy.cc}", f"--action_env=CXX={policy.cxx}"],
        ),
        (
            "Resource management",
            [
                f"--local_ram_resources={policy.local_ram_mb}",
                f"--local_cpu_resources={policy.local_cpus}",
                f"--jobs={policy.jobs}",
            ],
        ),
        (
            "Cache configuration",
            [
                f"--disk_cache={policy.disk_cache.as_posix()}",
                f"--repository_cache={policy.repository_cache.as_posix()}",
            ],
        ),
        (
            "Network settings",
            [
                f"--experimental_repository_downloader_retries={policy.downloader_retries}",
                f"--experimental_scale_timeouts={_format_number(policy.timeout_scale)}",
            ],
        ),
        (
            "Error reporting",
            ["--verbose_failures", "--show_timestamps", "--announce_rc"],
        ),
        (
            "Optimization flags",
            [f"--copt={opt}" for opt in policy.copts]
            + [f"--linkopt={opt}" for opt in policy.linkopts],
        ),
        (
            "Platform settings",
            [f"--host_platform={policy.platform}", f"--platforms={policy.platform}"],
        ),
    ]


def render_bazelrc(policy: BuildPolicy) -> str:
    """Render the rc file: one ``build --flag`` directive per line."""
    blocks: list[str] = []
    for heading, flags in bazelrc_sections(policy):
        if not flags:
            continue
        lines = [f"# {heading}"]
        lines.extend(f"build {flag}" for flag in flags)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"
