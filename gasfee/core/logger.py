# /gasfee/core/logger.py
import logging
import structlog
import sentry_sdk
from prometheus_client import Counter
from gasfee.core.config import settings

# --- Prometheus Metrics ---
POLLS_EXECUTED = Counter("gasfee_poll_ticks_total", "Total number of polling ticks executed")
POLL_ITEM_FAILURES = Counter("gasfee_poll_item_failures_total", "Poll item executions that raised", ["item"])
ESTIMATES_FETCHED = Counter("gasfee_estimates_fetched_total", "Gas estimates produced, by source", ["source"])
STALE_RESULTS_DISCARDED = Counter("gasfee_stale_results_discarded_total", "Results dropped after a network switch", ["item"])
ERRORS_LOGGED = Counter("gasfee_errors_logged_total", "Total number of errors logged", ["level"])


def count_errors(logger, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that counts warning-and-above events per level."""
    if method_name in ("warning", "error", "critical", "exception"):
        ERRORS_LOGGED.labels(method_name).inc()
    return event_dict

def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            count_errors,
            structlog.processors.JSONRenderer(), # Production-ready JSON logs
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

def get_logger(name: str):
    return structlog.get_logger(name)

configure_logging()
log = get_logger("GasFee.System")
