from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class SystemRecorder(Protocol):
    def on_stage_start(self, logger: logging.Logger, stage_name: str, **metrics: Any) -> None:
        ...

    def on_system_start(self, logger: logging.Logger, path: str, **metrics: Any) -> None:
        ...

    def on_system_end(self, logger: logging.Logger, record: dict[str, Any]) -> None:
        ...

    def on_system_error(
        self, logger: logging.Logger, path: str, system_id: str, exc: BaseException
    ) -> None:
        ...


class DefaultSystemRecorder:
    """Log every stage and system with its declared access and outcome."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def on_stage_start(self, logger: logging.Logger, stage_name: str, **metrics: Any) -> None:
        logger.info(
            "Stage: %s (systems=%d, waves=%d, entities=%d)",
            stage_name,
            int(metrics.get("systems", 0) or 0),
            int(metrics.get("waves", 0) or 0),
            int(metrics.get("entities", 0) or 0),
        )

    def on_system_start(self, logger: logging.Logger, path: str, **metrics: Any) -> None:
        tokens: list[str] = []
        wave = metrics.get("wave")
        if isinstance(wave, int):
            tokens.append(f"wave={wave}")
        reads = metrics.get("reads")
        if reads:
            tokens.append(f"reads={','.join(reads)}")
        writes = metrics.get("writes")
        if writes:
            tokens.append(f"writes={','.join(writes)}")
        source = metrics.get("source")
        if isinstance(source, str) and source.strip():
            tokens.append(f"source={source.strip()}")
        logger.debug("System: %s (%s)", path, ", ".join(tokens))

    def on_system_end(self, logger: logging.Logger, record: dict[str, Any]) -> None:
        self.records.append(record)
        logger.debug(
            "Completed system %s (spawned=%d, reports=%d)",
            record.get("path", "<unknown>"),
            int(record.get("spawned", 0) or 0),
            int(record.get("reports", 0) or 0),
        )

    def on_system_error(
        self, logger: logging.Logger, path: str, system_id: str, exc: BaseException
    ) -> None:
        logger.error("System failed: %s (%s)", path, exc)


class NullSystemRecorder:
    def on_stage_start(self, logger: logging.Logger, stage_name: str, **metrics: Any) -> None:
        return

    def on_system_start(self, logger: logging.Logger, path: str, **metrics: Any) -> None:
        return

    def on_system_end(self, logger: logging.Logger, record: dict[str, Any]) -> None:
        return

    def on_system_error(
        self, logger: logging.Logger, path: str, system_id: str, exc: BaseException
    ) -> None:
        return
