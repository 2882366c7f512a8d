"""Central logging configuration helpers for brokerprobe."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping

from loguru import logger

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


def _scope_matches(record_name: str, scope: str) -> bool:
    if record_name.startswith(scope):
        return True
    return not scope.startswith("brokerprobe.") and record_name.startswith(
        f"brokerprobe.{scope}"
    )


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
) -> tuple[int, ...]:
    """Configure loguru with module-based debug filtering.

    ``debug_scopes`` such as ``("core.phase_barrier",)`` enable DEBUG output
    for matching modules only, while everything else stays at ``level``.
    """
    logger.remove()

    handler_ids: list[int] = [
        logger.add(
            sys.stderr,
            level=level,
            format=DEFAULT_LOG_FORMAT,
            colorize=colorize,
        )
    ]

    scopes = tuple(scope.strip() for scope in debug_scopes if scope.strip())
    if scopes and level.upper() != "DEBUG":

        def _debug_filter(record: object) -> bool:
            if not isinstance(record, Mapping):
                return False
            if getattr(record.get("level"), "name", None) != "DEBUG":
                return False
            record_name = record.get("name", "") or ""
            return any(_scope_matches(record_name, scope) for scope in scopes)

        handler_ids.append(
            logger.add(
                sys.stderr,
                level="DEBUG",
                format=DEFAULT_LOG_FORMAT,
                colorize=colorize,
                filter=_debug_filter,
            )
        )

    return tuple(handler_ids)
