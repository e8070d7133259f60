"""Build orchestration module.

This module handles:
- The per-build state shared by steps
- The lifecycle steps (base image, VM, readiness, snapshot, push, cleanup)
- Running the step sequence and producing an Artifact
"""

from meda_builder.builds.artifact import Artifact, ArtifactError
from meda_builder.builds.state import BuildState

__all__ = ["Artifact", "ArtifactError", "BuildState"]
