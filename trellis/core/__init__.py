"""
Trellis Core - Runtime building blocks of the plugin manager.

This module contains:
- aio: Result/Promise primitives and combinators on asyncio
- queue: Bounded-concurrency task queue
- triggers: Registry of host trigger registrations
- fs: Async filesystem helpers
"""

__all__ = []
