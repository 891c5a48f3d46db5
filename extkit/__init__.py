"""extkit: extension lifecycle orchestrator with dependency ordering and lazy triggers."""

__version__ = "0.1.0"
