"""Generated build files: the Bazel rc file and the image recipe."""

from envoyforge.templating.bazelrc import render_bazelrc
from envoyforge.templating.dockerfile import render_dockerfile

__all__ = ["render_bazelrc", "render_dockerfile"]
