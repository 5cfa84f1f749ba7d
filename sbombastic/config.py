"""Command-line settings and JSON logging for the controller and worker."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from .log_level import parse_log_level

DEFAULT_LOG_LEVEL = "INFO"

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


@dataclass(frozen=True)
class ControllerConfig:
    """Settings of the controller manager."""

    metrics_addr: str = "0"
    probe_addr: str = ":8081"
    enable_leader_election: bool = False
    secure_metrics: bool = True
    enable_http2: bool = False
    log_level: str = DEFAULT_LOG_LEVEL


@dataclass(frozen=True)
class WorkerConfig:
    """Settings of a worker."""

    nats_url: str = "localhost:4222"
    run_dir: str = "/var/run/worker"
    log_level: str = DEFAULT_LOG_LEVEL


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _flag_names(name: str) -> tuple[str, str]:
    return f"-{name}", f"--{name}"


def _add_string(parser: argparse.ArgumentParser, name: str, dest: str, default: str, help_text: str) -> None:
    parser.add_argument(*_flag_names(name), dest=dest, default=default, help=help_text)


def _add_bool(parser: argparse.ArgumentParser, name: str, dest: str, default: bool, help_text: str) -> None:
    parser.add_argument(
        *_flag_names(name),
        dest=dest,
        default=default,
        nargs="?",
        const=True,
        type=_parse_bool,
        help=help_text,
    )


def parse_controller_flags(argv: Sequence[str] | None = None) -> ControllerConfig:
    """Parse the controller's command line; exit with status 2 on bad flags."""
    defaults = ControllerConfig()
    parser = argparse.ArgumentParser(prog="controller", allow_abbrev=False)
    _add_string(
        parser,
        "metrics-bind-address",
        "metrics_addr",
        defaults.metrics_addr,
        "The address the metrics endpoint binds to. Use :8443 for HTTPS or :8080 "
        "for HTTP, or leave as 0 to disable the metrics service.",
    )
    _add_string(
        parser,
        "health-probe-bind-address",
        "probe_addr",
        defaults.probe_addr,
        "The address the probe endpoint binds to.",
    )
    _add_bool(
        parser,
        "leader-elect",
        "enable_leader_election",
        defaults.enable_leader_election,
        "Enable leader election for controller manager. Enabling this will ensure "
        "there is only one active controller manager.",
    )
    _add_bool(
        parser,
        "metrics-secure",
        "secure_metrics",
        defaults.secure_metrics,
        "If set, the metrics endpoint is served securely via HTTPS. "
        "Use --metrics-secure=false to use HTTP instead.",
    )
    _add_bool(
        parser,
        "enable-http2",
        "enable_http2",
        defaults.enable_http2,
        "If set, HTTP/2 will be enabled for the metrics and webhook servers",
    )
    _add_string(parser, "log-level", "log_level", defaults.log_level, "Log level")
    return ControllerConfig(**vars(parser.parse_args(argv)))


def parse_worker_flags(argv: Sequence[str] | None = None) -> WorkerConfig:
    """Parse the worker's command line; exit with status 2 on bad flags."""
    defaults = WorkerConfig()
    parser = argparse.ArgumentParser(prog="worker", allow_abbrev=False)
    _add_string(parser, "nats-url", "nats_url", defaults.nats_url, "The URL of the NATS server")
    _add_string(parser, "run-dir", "run_dir", defaults.run_dir, "Directory to store temporary files")
    _add_string(parser, "log-level", "log_level", defaults.log_level, "Log level")
    return WorkerConfig(**vars(parser.parse_args(argv)))


def _level_name(levelno: int) -> str:
    level = ((levelno - logging.INFO) * 2) // 5
    for name, base in (("DEBUG", -4), ("INFO", 0), ("WARN", 4)):
        if level < base + 4:
            offset = level - base
            return name if offset == 0 else f"{name}{offset:+d}"
    offset = level - 8
    return "ERROR" if offset == 0 else f"ERROR{offset:+d}"


class JsonFormatter(logging.Formatter):
    """Formats each record as one JSON object with time, level and message."""

    def __init__(self, component: str | None = None) -> None:
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": _level_name(record.levelno),
            "msg": record.getMessage(),
        }
        if self.component is not None:
            entry["component"] = self.component
        for key, value in vars(record).items():
            if key not in _RECORD_FIELDS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logger(level: str, component: str) -> logging.Logger:
    """Return a logger writing JSON lines to stdout at the given level.

    Raises ValueError when the level cannot be parsed.
    """
    levelno = parse_log_level(level)
    logger = logging.getLogger(f"sbombastic.{component}")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(component))
    logger.addHandler(handler)
    logger.setLevel(levelno)
    logger.propagate = False
    return logger