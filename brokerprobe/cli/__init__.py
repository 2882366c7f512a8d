"""
brokerprobe command line interface.

Shard planning previews, simulated probe rounds and configuration dumps.
"""

from .main import cli, main

__all__ = ["main", "cli"]
