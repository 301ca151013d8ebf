"""Model management and providers."""

from .manager import ModelManager

__all__ = ["ModelManager"]
