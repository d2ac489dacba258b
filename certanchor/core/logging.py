"""Logging configuration for cert-anchor-service.

Two output modes, selected by LOG_JSON:

  _ContainerFormatter — single human-readable line per record, for local
    dev and `docker logs`.

  _JsonFormatter — one JSON object per line (JSON Lines) for log
    aggregation.  Request context attached by RequestContextMiddleware
    and domain context attached by the services (credential_id,
    request_id of the certificate request, ledger tx_id) become
    top-level keys, so "every log line about CERT-XYZ" is one filter.

Everything goes to stdout; the container runtime owns log shipping.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    Line shape: ``<ts> <LEVEL> <logger>  <message>  [file:line] {k=v ...}``.
    The location suffix is added from WARNING up; the trailing braces
    carry whichever of _TAIL_FIELDS the record has, so a grep for a
    credential id finds the line without switching to JSON mode.
    """

    _TAIL_FIELDS = (
        ("request_id", "rid"),
        ("credential_id", "cred"),
        ("ledger_tx_id", "tx"),
    )

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        # ".NNN" goes before the +HHMM offset
        return f"{base[:-5]}.{int(record.msecs):03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        head, sep, trace = line.partition("\n")
        if record.levelno >= logging.WARNING:
            head += f"  [{record.filename}:{record.lineno}]"
        tail = " ".join(
            f"{short}={getattr(record, attr)}"
            for attr, short in self._TAIL_FIELDS
            if getattr(record, attr, None) not in (None, "", "-")
        )
        if tail:
            head += f"  {{{tail}}}"
        return head + sep + trace


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Fields listed in _CONTEXT_FIELDS are copied from the LogRecord when
    present.  Callers attach them with `extra={...}`.
    """

    _CONTEXT_FIELDS = (
        # HTTP context (RequestContextMiddleware)
        "request_id",
        "method",
        "path",
        "user_id",
        "status_code",
        "duration_ms",
        # Certificate lifecycle context
        "credential_id",
        "cert_request_id",
        "institution_id",
        "ledger_tx_id",
        "ledger_asset_id",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error).  Unknown
                    names fall back to INFO.
        json_format: Emit JSON lines instead of the human-readable format.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Third-party server and HTTP client loggers stay at WARNING+
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
