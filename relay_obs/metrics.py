"""
Prometheus Metrics Registration.

Custom metrics for tool routing and execution.
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# COUNTERS
# ============================================================================

tool_executions_total = Counter(
    "tool_executions_total",
    "Total tool executions",
    ["transport", "outcome"],  # outcome: success, http_error, protocol_error, transport_error
)

protocol_connections_total = Counter(
    "protocol_connections_total",
    "Tool server connection attempts",
    ["transport", "outcome"],  # connected, failed
)

routine_shortcut_total = Counter(
    "routine_shortcut_total",
    "Routine shortcut decisions",
    ["outcome"],  # accepted, rejected, fallback, error
)

catalog_truncations_total = Counter(
    "catalog_truncations_total", "Tool selections truncated at the hard ceiling"
)

# ============================================================================
# GAUGES
# ============================================================================

protocol_connections_active = Gauge(
    "protocol_connections_active",
    "Live tool server connections held by the pool",
    ["transport"],
)

# ============================================================================
# HISTOGRAMS
# ============================================================================

tool_execution_duration = Histogram(
    "tool_execution_duration_seconds",
    "Tool execution duration",
    ["transport"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

catalog_tools_selected = Histogram(
    "catalog_tools_selected",
    "Callable tools surfaced per model invocation",
    buckets=(1, 5, 10, 15, 25, 50, 100, 128),
)
