"""Loggers that append to a file on disk."""

from __future__ import annotations

import os
from typing import TextIO

from boshutils.logger import Logger, new_writer_logger

DEFAULT_LOG_FILE_MODE = 0o666


def new_file_logger(
    level: int, file_path: str | os.PathLike[str], file_mode: int = DEFAULT_LOG_FILE_MODE
) -> tuple[Logger, TextIO]:
    """Open file_path for appending and return a logger writing to it with the open file.

    The caller is responsible for closing the returned file.
    """
    try:
        fd = os.open(file_path, os.O_CREAT | os.O_WRONLY | os.O_APPEND, file_mode)
    except OSError as err:
        raise OSError(
            err.errno, f"Failed to open log file '{os.fspath(file_path)}': {err.strerror}"
        ) from err
    handle = os.fdopen(fd, "a", encoding="utf-8")
    return new_writer_logger(level, handle), handle