"""Diagnostic logging for entitlectl commands.

Everything goes to stderr so stdout stays reserved for command results
(``--json`` output in particular).  Events are dotted names such as
``reconcile.complete`` or ``side_effect.failed`` with their facts as
key/value pairs; ``--log-json`` emits one JSON object per event.

The acting identity is bound once per invocation, so every line a
command produces carries ``actor_id`` and ``actor_role``.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from entitlectl.domain.actors import Actor


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
) -> None:
    """Route structlog and stdlib records through one stderr handler.

    ``verbose`` lowers the ``entitlectl`` loggers to DEBUG; third-party
    loggers (alembic, sqlalchemy, pluggy) stay at WARNING either way.
    Safe to call repeatedly: the handler is replaced and any identity
    bound by an earlier invocation is dropped.
    """
    structlog.contextvars.clear_contextvars()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("entitlectl").setLevel(logging.DEBUG if verbose else logging.WARNING)
    for noisy in ("alembic", "sqlalchemy", "pluggy"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_actor(actor: Actor) -> None:
    """Attach *actor* to every event logged for the rest of this invocation."""
    structlog.contextvars.bind_contextvars(actor_id=actor.id, actor_role=str(actor.role))
