"""Monitoring configuration for sveord."""
from prometheus_client import Counter, start_http_server

# Quiz metrics
quizzes_generated = Counter(
    "sveord_quizzes_generated_total",
    "Total number of quizzes generated",
    ["question_type"],
)

quiz_generation_failures = Counter(
    "sveord_quiz_generation_failures_total",
    "Total number of quiz generations rejected for lack of usable words",
    ["question_type"],
)

quizzes_practiced = Counter(
    "sveord_quizzes_practiced_total",
    "Total number of quizzes marked as practiced",
)

# Enrichment metrics
words_enriched = Counter(
    "sveord_words_enriched_total",
    "Total number of words enriched by the AI provider",
)

enrichment_failures = Counter(
    "sveord_enrichment_failures_total",
    "Total number of failed enrichment attempts",
)

# Progress metrics
progress_self_heals = Counter(
    "sveord_progress_self_heals_total",
    "Total number of progress flags normalized during aggregation",
)

# Export metrics
exports_written = Counter(
    "sveord_exports_written_total",
    "Total number of unified list exports written",
)

# Backend metrics
backend_errors = Counter(
    "sveord_backend_errors_total",
    "Total number of backend request failures",
    ["table"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
