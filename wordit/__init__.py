"""WordIt - rich document markup to Word (.docx) conversion with caching."""

__version__ = "0.1.0"

from wordit.core.supervisor import GenerationSupervisor, generate_artifact_sync

__all__ = [
    "__version__",
    "GenerationSupervisor",
    "generate_artifact_sync",
]
