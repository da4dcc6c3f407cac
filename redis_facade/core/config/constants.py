"""
System-wide constants for the cache access layer.

Author: System Architect
Date: 2026-10-19
"""

from enum import Enum

# =============================================================================
# Logical databases
# =============================================================================

MIN_LOGICAL_DB = 0
MAX_LOGICAL_DB = 15

# =============================================================================
# Topologies
# =============================================================================


class Topology(str, Enum):
    """Deployment topology selected at boot."""

    SINGLE = "single"
    ARBITER = "arbiter"
    SHARDED = "sharded"


class MultiKeyPolicy(str, Enum):
    """How a sharded pool treats MGET/DEL whose keys span shards."""

    STRICT = "strict"  # fail with CrossShardError
    MERGE = "merge"    # issue per-shard sub-calls and merge


# =============================================================================
# Pool health
# =============================================================================


class PoolState(str, Enum):
    """Connection pool health states."""

    HEALTHY = "healthy"          # < 70% capacity
    DEGRADED = "degraded"        # 70-90% capacity
    CRITICAL = "critical"        # 90-100% capacity
    EXHAUSTED = "exhausted"      # At 100% capacity


POOL_DEGRADED_THRESHOLD = 0.7
POOL_CRITICAL_THRESHOLD = 0.9
POOL_UTILIZATION_WARNING_PCT = 80

# Waiting borrowers re-check their cancel flag at least this often (seconds)
BORROW_CANCEL_POLL_INTERVAL = 0.05

# =============================================================================
# Sharding
# =============================================================================

DEFAULT_VIRTUAL_NODES = 160

# =============================================================================
# Arbiters
# =============================================================================

ARBITER_SWITCH_CHANNEL = "+switch-master"
ARBITER_LISTENER_RECONNECT_DELAY = 1.0
ARBITER_DISCOVERY_RETRY_DELAY = 0.25

# =============================================================================
# Key namespaces
# =============================================================================

NAMESPACE_SEPARATOR = "::"
