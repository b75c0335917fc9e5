"""
Prometheus metrics for module upgrade runs.

Counts what each startup run did: modules observed, components executed and
skipped, module failures, and how long each module pass took.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    start_http_server,
)

logger = logging.getLogger(__name__)

METRICS_VERSION = "0.1.0"


class UpgradeMetrics:
    """Metrics collectors for the module upgrade orchestrator."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collectors.

        Args:
            registry: Optional custom registry. Uses the default if None.
        """
        self.registry = registry or REGISTRY

        self.modules_observed = Counter(
            "module_upgrade_modules_observed_total",
            "Modules processed by the startup orchestrator",
            ["outcome"],
            registry=self.registry,
        )

        self.components_executed = Counter(
            "module_upgrade_components_executed_total",
            "Module components whose executable unit completed",
            ["module_id"],
            registry=self.registry,
        )

        self.component_skips = Counter(
            "module_upgrade_component_skips_total",
            "Module components skipped, by reason",
            ["module_id", "reason"],
            registry=self.registry,
        )

        self.module_failures = Counter(
            "module_upgrade_module_failures_total",
            "Module passes rolled back, by error type",
            ["module_id", "error_type"],
            registry=self.registry,
        )

        self.module_duration = Histogram(
            "module_upgrade_module_duration_seconds",
            "Time spent bringing one module up to its deployed version",
            ["module_id"],
            registry=self.registry,
        )

        self.system_info = Info(
            "module_upgrade_system",
            "Module upgrade orchestrator information",
            registry=self.registry,
        )
        self.system_info.info({
            "version": METRICS_VERSION,
            "component": "module_upgrade",
        })

        logger.debug("Upgrade metrics initialized")

    def record_module_observed(self, outcome: str):
        """Record a module pass with its outcome (committed or failed)."""
        self.modules_observed.labels(outcome=outcome).inc()

    def record_component_executed(self, module_id: str):
        """Record a component execution."""
        self.components_executed.labels(module_id=module_id).inc()

    def record_component_skipped(self, module_id: str, reason: str):
        """Record a skipped component."""
        self.component_skips.labels(module_id=module_id, reason=reason).inc()

    def record_module_failure(self, module_id: str, error_type: str):
        """Record a failed module pass."""
        self.module_failures.labels(
            module_id=module_id, error_type=error_type
        ).inc()

    def record_module_duration(self, module_id: str, duration: float):
        """Record the time taken by one module pass."""
        self.module_duration.labels(module_id=module_id).observe(duration)


_metrics_instance: Optional[UpgradeMetrics] = None


def get_metrics() -> UpgradeMetrics:
    """Get the global metrics instance."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = UpgradeMetrics()
    return _metrics_instance


def start_metrics_server(port: int = 8000, addr: str = "0.0.0.0"):
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to serve metrics on
        addr: Address to bind to
    """
    try:
        start_http_server(port, addr)
        logger.info(f"Prometheus metrics server started on {addr}:{port}")
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        raise
