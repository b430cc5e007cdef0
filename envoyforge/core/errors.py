"""Pipeline error taxonomy.

Every stage failure is fatal to the run. Stages raise one of the classes
below; the orchestrator records it unchanged and derives the process exit
status from ``exit_code``. ``detail`` carries the failing tool's raw
output so the CLI can surface it verbatim.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for all fatal pipeline failures."""

    kind: str = "pipeline"
    exit_code: int = 1

    def __init__(self, message: str, *, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class StageExecutionError(PipelineError):
    """Raised when a stage fails with an exception outside the taxonomy."""

    kind = "stage"
    exit_code = 1


class InputError(PipelineError):
    """The requested revision does not resolve to a source tree state."""

    kind = "input"
    exit_code = 2


class ToolchainError(PipelineError):
    """Toolchain installation or selection failed."""

    kind = "environment"
    exit_code = 3


class BuildError(PipelineError):
    """Configuration write, compilation, or image build failed."""

    kind = "build"
    exit_code = 4


class VerificationError(PipelineError):
    """The built binary or image failed its self-check."""

    kind = "verification"
    exit_code = 5


class PublishError(PipelineError):
    """Registry authentication, tagging, or push failed."""

    kind = "publish"
    exit_code = 6


class RetentionError(PipelineError):
    """The binary could not be retained as a build artifact."""

    kind = "retention"
    exit_code = 7


class ConfigurationError(PipelineError):
    """Pipeline settings are incomplete or invalid."""

    kind = "configuration"
    exit_code = 8
