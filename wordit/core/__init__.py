"""Generation supervision."""

from wordit.core.deadline import Deadline
from wordit.core.supervisor import GenerationSupervisor, generate_artifact_sync

__all__ = ["Deadline", "GenerationSupervisor", "generate_artifact_sync"]
