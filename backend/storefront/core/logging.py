"""Structured logging for the storefront API.

structlog is configured with a stdlib bridge so uvicorn, SQLAlchemy, httpx and
the Stripe SDK emit through the same renderer:
- JSON lines in production, tracebacks rendered as structured dicts
- ConsoleRenderer in debug mode
- correlation_id from asgi-correlation-id and the service name on every entry
- credentials (bearer tokens, Stripe signatures, API keys) masked before rendering
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

REDACTED = "[redacted]"

# Event keys whose values are credentials and never leave the process
SENSITIVE_KEYS = frozenset({
    "authorization",
    "access_token",
    "token",
    "stripe_signature",
    "signature_header",
    "signing_secret",
    "stripe_secret_key",
    "stripe_webhook_secret",
    "service_role_key",
    "supabase_service_role_key",
    "supabase_jwt_secret",
})

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "stripe", "sqlalchemy.engine", "botocore", "boto3")


def add_correlation_id(logger, method, event_dict):
    """Copy the request correlation id into the event dict when one is set."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def add_service(service: str):
    def _add_service(logger, method, event_dict):
        event_dict.setdefault("service", service)
        return event_dict

    return _add_service


def redact_secrets(logger, method, event_dict):
    """Mask credential-bearing keys, including one level down in dict values."""
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else v for k, v in value.items()
            }
    return event_dict


def configure_structlog(log_level: str = "INFO", json_logs: bool = True, service: str = "storefront-backend") -> None:
    """Configure structlog and the stdlib root logger.

    Must run before modules that call ``structlog.get_logger`` are imported,
    since the processor chain is cached on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output, False for the console renderer
        service: Value of the ``service`` key on every entry
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        add_service(service),
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        render_processors = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        render_processors = [structlog.dev.ConsoleRenderer()]

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    *render_processors,
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["default"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
    })

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
