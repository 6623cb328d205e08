"""
Pool Participant Tracker - Tracker Package

Pulls per-participant snapshots from a ckpool-style status source, reconciles
them into SQLite time-series storage and tracks participant liveness.
"""

__version__ = "0.3.0"

__all__ = [
    "cache",
    "config",
    "deps",
    "errors",
    "fetcher",
    "lifecycle",
    "models",
    "normalize",
    "pipeline",
    "reconciler",
    "retention",
    "routers",
    "scheduler",
    "server",
    "storage",
]
