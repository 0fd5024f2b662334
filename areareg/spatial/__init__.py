"""Region partitioning module."""
from .partition import (
    Partition,
    PartitionResult,
    RegionMapping,
    RegionPartitioner,
    check_exhaustive,
    check_partition_size,
    partition_observations,
)

__all__ = [
    "Partition",
    "PartitionResult",
    "RegionMapping",
    "RegionPartitioner",
    "check_exhaustive",
    "check_partition_size",
    "partition_observations",
]
