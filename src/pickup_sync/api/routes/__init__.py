"""Route group exports."""

from . import health, properties, sync

__all__ = ["health", "properties", "sync"]
