"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Ingest metrics
ingest_requests = Counter(
    "compliance_ingest_requests_total",
    "Total ingest requests",
    ["outcome"],
)

ingest_duration = Histogram(
    "compliance_ingest_duration_seconds",
    "Ingest request duration",
)

# Audit chain metrics
audit_records_written = Counter(
    "compliance_audit_records_written_total",
    "Audit records appended to the chain",
)

audit_exports = Counter(
    "compliance_audit_exports_total",
    "Audit record uploads to object storage",
    ["status"],
)

chain_verifications = Counter(
    "compliance_chain_verifications_total",
    "Audit chain verification runs",
    ["result"],
)

# Prediction metrics
predictions_generated = Counter(
    "compliance_predictions_generated_total",
    "Risk predictions emitted",
    ["risk_category", "severity"],
)

# Alert metrics
alert_dispatches = Counter(
    "compliance_alert_dispatches_total",
    "Alert notifications handed to the queue",
    ["alert_type", "status"],
)
