from prometheus_client import Counter, Histogram

metrics = {
    "approvals_requested_total": Counter(
        "sourcing_approvals_requested_total",
        "Count of approval requests by policy source",
        ["policy_source"],
    ),
    "approvals_decisions_total": Counter(
        "sourcing_approvals_decisions_total",
        "Count of approval decisions by resulting status",
        ["status"],
    ),
    "approvals_latency_seconds": Histogram(
        "sourcing_approvals_latency_seconds",
        "Latency from approval request to final decision",
        buckets=(60, 300, 900, 3600, 4 * 3600, 8 * 3600, 24 * 3600, 72 * 3600),
    ),
    "notifications_total": Counter(
        "sourcing_notifications_total",
        "Notifications by kind and outcome",
        ["kind", "outcome"],
    ),
    "sla_sweep_runs_total": Counter(
        "sourcing_sla_sweep_runs_total",
        "Completed SLA reminder sweeps",
    ),
}


def observe(name: str, *labels: str, value: float | None = None) -> None:
    """Best-effort metric update; metric failures never affect the caller."""
    try:
        metric = metrics[name]
        if labels:
            metric = metric.labels(*labels)
        if value is None:
            metric.inc()
        else:
            metric.observe(value)
    except Exception:  # noqa: BLE001
        pass
