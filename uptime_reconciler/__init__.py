"""Scheduled uptime reconciler: probes targets and keeps incident and latency history."""

from .__about__ import __version__

__all__ = ["__version__"]
