"""
Trellis Plugin System - Plugin registration, loading and synchronization.

This module handles:
- Plugin model and chainable configuration
- Lazy-loading triggers
- Dependency resolution and the load state machine
- Git-based install, update and clean pipelines
"""

__all__ = []
