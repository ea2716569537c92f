import logging
from pathlib import Path
from typing import Optional

PASSTHROUGH_LOGGER = "ibt.extraction.output"


def setup_logging(log_path: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """
    Setup logging configuration for IBT.

    Logs always go to the console; when ``log_path`` is given they are also
    written to that file, together with the raw output of the extraction
    subprocess (see ``PASSTHROUGH_LOGGER``).

    Args:
        log_path: Optional path to a log file (parent directories are created)
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.INFO

    handlers: list = [logging.StreamHandler()]
    if log_path:
        log_file = Path(log_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    # Pass-through lines are printed to the console by the extraction runner;
    # here they only go to the log file.
    passthrough = logging.getLogger(PASSTHROUGH_LOGGER)
    for handler in list(passthrough.handlers):
        passthrough.removeHandler(handler)
        handler.close()
    passthrough.propagate = False
    passthrough.setLevel(logging.INFO)
    if log_path:
        raw_handler = logging.FileHandler(Path(log_path))
        raw_handler.setFormatter(logging.Formatter('%(message)s'))
        passthrough.addHandler(raw_handler)
    else:
        passthrough.addHandler(logging.NullHandler())

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_path or 'console'} (debug={'ON' if debug else 'OFF'})")

    return logger
