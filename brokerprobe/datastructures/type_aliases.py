"""
Semantic type aliases for brokerprobe.

This module provides meaningful type aliases that make the codebase more
self-documenting by replacing raw types like str, int, float with
semantic aliases.
"""

# Time types
type Timestamp = float
type DurationSeconds = float
type ElapsedMilliseconds = int

# Cluster topology types
type ClusterName = str
type TopicName = str
type PartitionId = int
type ServiceAddress = str  # Peer identifier of a prober service instance

# Metric types
type MetricName = str
type MetricScope = str  # "all", a topic name, or "topic-partition"
type EncodedMetricKey = str
type PhaseNumber = int
type ParticipantId = int
