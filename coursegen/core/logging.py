"""Structured logging for the scheduler.

The ``coursegen`` logger tree runs at the configured level while other
libraries (asyncio, pydantic, anything the generator pulls in) are held at
``library_log_level``. Every entry emitted by this package carries a
``component`` field (``admission``, ``generation_queue``, ...) plus any
``task_id``/``request_id``/``submitter_id`` bound through structlog contextvars.
"""

import logging
import logging.config

import structlog
from structlog.typing import EventDict, WrappedLogger

PACKAGE_LOGGER = "coursegen"


def add_component(_logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
    """Tag entries from this package with the module that emitted them."""
    name = event_dict.get("logger") or ""
    if name.startswith(f"{PACKAGE_LOGGER}."):
        event_dict.setdefault("component", name.rsplit(".", 1)[-1])
    return event_dict


def configure_structlog(
    log_level: str = "INFO",
    json_logs: bool = True,
    library_log_level: str = "WARNING",
) -> None:
    """Route structlog and stdlib records through one stdout formatter.

    Call once at process start; loggers are cached on first use.

    Args:
        log_level: Level for the ``coursegen`` logger tree
        json_logs: JSON lines when True, ConsoleRenderer otherwise
        library_log_level: Level for every other logger
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_component,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        pre_chain += [structlog.processors.StackInfoRenderer(), structlog.processors.format_exc_info]
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "coursegen": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": pre_chain,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "coursegen",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            PACKAGE_LOGGER: {"level": log_level},
        },
        "root": {"handlers": ["stdout"], "level": library_log_level},
    })

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
