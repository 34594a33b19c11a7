"""
structlog configuration.

structlog events and stdlib records (grpc's own ``grpc._cython`` loggers included) share
one ``ProcessorFormatter`` chain, so call logs and transport warnings render alike.
Levels come from ``settings.LOG_LEVEL`` (``DEBUG`` when ``settings.DEBUG``) and
``settings.GRPC_LOG_LEVEL`` for the ``grpc`` logger tree.
"""
import json
import logging
import sys
from typing import Any, List, Optional, TextIO, Union

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from typed_grpc.core.config import settings


def get_renderer() -> Any:
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    # structlog passes default=/sort_keys= through to the serializer
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def _level(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {value!r}")
    return level


def configure_logging(
    stream: Optional[TextIO] = None,
    level: Optional[Union[int, str]] = None,
) -> None:
    """Route structlog and stdlib logging to ``stream`` (stderr by default).

    Calling it again replaces the root handler instead of adding a second one. Unknown
    level names raise ``ValueError`` before anything is reconfigured.
    """
    if level is None:
        level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL
    root_level = _level(level)
    grpc_level = _level(settings.GRPC_LOG_LEVEL)

    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[ProcessorFormatter.remove_processors_meta, get_renderer()],
    )
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)
    logging.getLogger("grpc").setLevel(grpc_level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
