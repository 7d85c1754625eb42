# Shared by every hivecho component, one file handler per named logger
import logging
from pathlib import Path
from typing import Set, Union

_names: Set[str] = set()

def get_logger(name: str = "hivecho") -> logging.Logger:
    logger = logging.getLogger(name)
    _names.add(name)
    if not logger.hasHandlers():
        logger.setLevel(logging.DEBUG)

        log_dir = Path.home() / ".hivecho" / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = str(log_dir / "hivecho.log")

        fh = logging.FileHandler(log_path, mode="a")
        fh.setLevel(logging.DEBUG)

        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        fh.setFormatter(formatter)

        logger.addHandler(fh)
    return logger

def set_level(level: Union[str, int]):
    """Apply a level (e.g. "INFO" from config) to every logger handed out so far"""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    for name in _names:
        logging.getLogger(name).setLevel(level)
