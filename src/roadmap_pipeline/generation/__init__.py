"""Access to the external generative service."""

from .client import GenerationClient, classify_status

__all__ = ["GenerationClient", "classify_status"]
