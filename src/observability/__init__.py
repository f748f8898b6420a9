"""
Observability module for the AdStreak reward engine.

This module provides:
- Metrics collection with Prometheus
"""

__all__ = ["metrics"]
