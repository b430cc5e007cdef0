"""envoyforge: build, package and publish Envoy proxy images from source.

One linear pipeline per invocation:
  source fetch -> environment preparation -> build configuration
  -> binary build (+ self-check) -> image assembly -> publish
  -> artifact retention
"""

__version__ = "0.1.0"
__description__ = "Build the Envoy proxy from source and publish it as a container image"

from envoyforge.core.orchestrator import Orchestrator
from envoyforge.models.config import PipelineConfig, PipelineRun

__all__ = ["Orchestrator", "PipelineConfig", "PipelineRun", "__version__"]
