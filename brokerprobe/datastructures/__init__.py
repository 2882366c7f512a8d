"""
Datastructures for brokerprobe.

Bounded, thread-safe containers used by the latency aggregation layer and
semantic type aliases shared across the package.
"""

from .sliding_window import HistogramSnapshot, SlidingWindowHistogram

__all__ = ["HistogramSnapshot", "SlidingWindowHistogram"]
