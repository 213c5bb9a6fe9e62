"""
Adapters layer - Schedule storage implementations.
"""

from .memory_repository import InMemoryScheduleRepository

__all__ = ["InMemoryScheduleRepository"]
