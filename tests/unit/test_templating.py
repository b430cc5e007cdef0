"""Tests for the generated build files: the Bazel rc file and the image recipe."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path, PurePosixPath

from envoyforge.models.config import BuildPolicy, ImagePolicy
from envoyforge.templating.bazelrc import bazelrc_sections, render_bazelrc
from envoyforge.templating.dockerfile import build_args, image_labels, render_dockerfile

BINARY = PurePosixPath("envoy-static")


class TestBazelrc:
    def test_rendering_is_deterministic(self):
        assert render_bazelrc(BuildPolicy()) == render_bazelrc(BuildPolicy())

    def test_every_directive_is_a_build_line(self):
        content = render_bazelrc(BuildPolicy())
        for line in content.splitlines():
            assert line == "" or line.startswith("# ") or line.startswith("build --")
        assert content.endswith("\n")

    def test_features(self):
        lines = render_bazelrc(BuildPolicy()).splitlines()
        assert "build --define=wasm=enabled" in lines
        assert "build --define=hot_restart=disabled" in lines
        assert "build --define=liburing=disabled" in lines
        assert "build --config=libc++" in lines
        assert "build --compilation_mode=opt" in lines

    def test_resource_caps_follow_policy(self):
        policy = BuildPolicy(local_ram_mb=16384, local_cpus=8, jobs=8)
        lines = render_bazelrc(policy).splitlines()
        assert "build --local_ram_resources=16384" in lines
        assert "build --local_cpu_resources=8" in lines
        assert "build --jobs=8" in lines

    def test_caches_and_network(self):
        policy = BuildPolicy(
            disk_cache=Path("/var/cache/bazel"),
            repository_cache=Path("/var/cache/bazel-repo"),
        )
        lines = render_bazelrc(policy).splitlines()
        assert "build --disk_cache=/var/cache/bazel" in lines
        assert "build --repository_cache=/var/cache/bazel-repo" in lines
        assert "build --experimental_repository_downloader_retries=3" in lines
        assert "build --experimental_scale_timeouts=5.0" in lines

    def test_compiler_and_platform(self):
        lines = render_bazelrc(BuildPolicy()).splitlines()
        assert "build --action_env=CC=clang" in lines
        assert "build --action_env=CXX=clang++" in lines
        assert "build --host_platform=@envoy//bazel:x64_linux" in lines
        assert "build --platforms=@envoy//bazel:x64_linux" in lines

    def test_empty_sections_are_omitted(self):
        policy = BuildPolicy(copts=[], linkopts=[])
        headings = [h for h, flags in bazelrc_sections(policy) if not flags]
        assert headings == ["Optimization flags"]
        assert "# Optimization flags" not in render_bazelrc(policy)


class TestDockerfile:
    def test_rendering_is_deterministic(self, make_run):
        run = make_run("v1.28.0")
        first = render_dockerfile(ImagePolicy(), run, BINARY)
        second = render_dockerfile(ImagePolicy(), run, BINARY)
        assert first == second

    def test_identical_across_runs_of_one_revision(self, make_run):
        first = make_run("v1.28.0")
        later = make_run(
            "v1.28.0",
            run_id="ef-test-run-002",
            created_at=first.created_at + timedelta(hours=3, seconds=1),
        )
        assert render_dockerfile(ImagePolicy(), first, BINARY) == render_dockerfile(
            ImagePolicy(), later, BINARY
        )
        assert build_args(first) != build_args(later)

    def test_stages_and_runtime_base(self, make_run):
        content = render_dockerfile(ImagePolicy(), make_run(), BINARY)
        lines = content.splitlines()
        assert lines[0] == "FROM envoyproxy/envoy:v1.28.0 AS helper"
        assert lines[1] == "FROM ubuntu:22.04"
        assert lines[2] == "ARG BUILD_TIMESTAMP"
        assert "--no-install-recommends" in content
        assert "libc++1" in content

    def test_copies_binary_and_entrypoint(self, make_run):
        lines = render_dockerfile(ImagePolicy(), make_run(), BINARY).splitlines()
        assert "COPY envoy-static /usr/local/bin/envoy" in lines
        assert "COPY --from=helper /docker-entrypoint.sh /docker-entrypoint.sh" in lines

    def test_runs_as_unprivileged_user(self, make_run):
        content = render_dockerfile(ImagePolicy(), make_run(), BINARY)
        assert "groupadd --gid 101 envoy" in content
        assert "useradd --uid 101 --gid envoy" in content
        user_lines = [line for line in content.splitlines() if line.startswith("USER ")]
        assert user_lines == ["USER envoy"]

    def test_ports_entrypoint_and_command(self, make_run):
        lines = render_dockerfile(ImagePolicy(), make_run(), BINARY).splitlines()
        assert "EXPOSE 10000 9901" in lines
        assert 'ENTRYPOINT ["/docker-entrypoint.sh"]' in lines
        assert lines[-1] == 'CMD ["envoy", "--version"]'

    def test_labels(self, make_run):
        policy = ImagePolicy(source_url="https://github.com/acme/envoy")
        content = render_dockerfile(policy, make_run("v1.30.1"), BINARY)
        assert 'LABEL org.opencontainers.image.source="https://github.com/acme/envoy"' in content
        assert 'LABEL custom.envoy.version="v1.30.1"' in content
        assert 'LABEL custom.build.method="native-bazel"' in content
        assert 'LABEL custom.build.timestamp="$BUILD_TIMESTAMP"' in content
        assert build_args(make_run("v1.30.1")) == {"BUILD_TIMESTAMP": "2026-01-15T12:30:00Z"}

    def test_source_label_omitted_without_url(self, make_run):
        labels = image_labels(ImagePolicy(), make_run())
        assert "org.opencontainers.image.source" not in labels
        assert labels["org.opencontainers.image.description"] == (
            "Custom Envoy proxy with WASM support"
        )

    def test_revision_with_slash_is_labelled_verbatim(self, make_run):
        content = render_dockerfile(ImagePolicy(), make_run("release/v1.28"), BINARY)
        assert 'LABEL custom.envoy.version="release/v1.28"' in content
