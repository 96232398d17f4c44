"""
Storage Provider Node - Provider Package

Reconciliation daemon for one storage operator: claims files assigned to it
by paying users, writes an encrypted placeholder artifact per file, keeps
per-user usage in sync, and publishes liveness to the shared backend.
"""

__version__ = "0.1.0"

__all__ = [
    "allocations",
    "backend",
    "claims",
    "config",
    "daemon",
    "discovery",
    "encryption",
    "errors",
    "heartbeat",
    "identity",
    "monitoring",
    "storage",
    "usage",
]
