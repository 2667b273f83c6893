"""
RouteScan – delivery-route screenshot extraction.

Shared utilities (config, logging, paths), domain models and normalization
live at the top level; the extraction pipeline lives in `orchestrator`.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]

__version__ = "0.1.0"
