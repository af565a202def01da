"""
Prometheus metrics, exposed via the /metrics mount in app.main.
"""
from prometheus_client import Counter, Histogram

INSPECTIONS_CREATED = Counter(
    "inspections_created_total",
    "Inspections created with a frozen parameter snapshot",
)

RESPONSES_SAVED = Counter(
    "inspection_responses_saved_total",
    "Answer rows written",
    ["mode"],  # single | batch
)

INSPECTIONS_SCORED = Counter(
    "inspections_scored_total",
    "Scoring runs persisted",
    ["certification"],
)

CERTIFICATES_ISSUED = Counter(
    "inspection_certificates_issued_total",
    "Certificates minted",
)

SCORING_DURATION = Histogram(
    "inspection_scoring_duration_seconds",
    "Load + evaluate + persist time for one scoring run",
)
