#!/usr/bin/env python3
"""UTF-8-safe logging setup for slam-setup."""

import io
import logging
import sys
from pathlib import Path
from typing import Optional, Union


_utf8_stdout = None


def _get_utf8_stdout():
    # One wrapper per process; a discarded TextIOWrapper closes sys.stdout.buffer
    global _utf8_stdout
    if _utf8_stdout is None:
        _utf8_stdout = io.TextIOWrapper(
            sys.stdout.buffer,
            encoding='utf-8',
            errors='replace',
            line_buffering=True
        )
    return _utf8_stdout


class UTF8StreamHandler(logging.StreamHandler):
    """Custom stream handler that forces UTF-8 encoding for console output."""
    def __init__(self, stream=None):
        if stream is None:
            stream = _get_utf8_stdout()
        super().__init__(stream)


def setup_logger(name: str = "slam_setup",
                 log_level: str = "INFO",
                 log_file: Optional[Union[str, Path]] = None,
                 stream=None) -> logging.Logger:
    """
    Setup a UTF-8-safe logger with console and optional file output.

    Console: bare messages at log_level (progress lines for the user).
    File: DEBUG with timestamps, including captured conda/pip output.
    """

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers = []  # Clear existing handlers

    # Console handler
    console_handler = UTF8StreamHandler(stream)
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8', errors='replace')
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '[%(asctime)s] %(levelname)s: %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger
