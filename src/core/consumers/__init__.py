"""Consumer registration tables."""

from .registry import ConsumerDefinition, instrument

__all__ = ["ConsumerDefinition", "instrument"]
