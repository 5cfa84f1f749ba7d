"""Parsing of textual log levels such as ``INFO`` or ``DEBUG+2``."""

import logging
import re

_BASE_LEVELS = {
    "DEBUG": -4,
    "INFO": 0,
    "WARN": 4,
    "ERROR": 8,
}

_OFFSET = re.compile(r"[+-]\d+")


def parse_log_level(text: str) -> int:
    """Parse a level name with an optional signed offset into a logging level.

    Accepted names are DEBUG, INFO, WARN and ERROR, in any case, optionally
    followed by an offset such as ``+2`` or ``-1``. The result is a level for
    the :mod:`logging` module (DEBUG maps to ``logging.DEBUG`` and so on).

    Raises ValueError when the text cannot be parsed.
    """
    name = text
    offset = 0
    split = min((i for i in (text.find("+"), text.find("-")) if i >= 0), default=-1)
    if split >= 0:
        name, offset_text = text[:split], text[split:]
        if not _OFFSET.fullmatch(offset_text):
            raise ValueError(
                f"unable to parse log level: {text}, error: invalid offset {offset_text!r}"
            )
        offset = int(offset_text)

    base = _BASE_LEVELS.get(name.upper())
    if base is None:
        raise ValueError(f"unable to parse log level: {text}, error: unknown name")

    level = base + offset
    # The scale above spaces named levels 4 apart; logging spaces them 10 apart.
    return logging.INFO + (level * 5) // 2