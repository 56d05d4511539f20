"""Counter store adapters for rate limiting.

The pipeline starts with an in-memory store and can migrate to Redis or
another shared store behind the same interface.
"""

from todo_service.adapters.rate_limit.base import AbstractCounterStore, CounterRecord, CounterResult
from todo_service.adapters.rate_limit.in_memory import InMemoryCounterStore

__all__ = ["AbstractCounterStore", "CounterRecord", "CounterResult", "InMemoryCounterStore"]
