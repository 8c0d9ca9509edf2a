import logging
from datetime import datetime
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / "logs" / "vconvert"

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(log_dir: Path = DEFAULT_LOG_DIR, debug: bool = False) -> logging.Logger:
    """Routes all logging for this run into ``<log_dir>/vconvert_<timestamp>.log``.

    The console belongs to rich, so no stream handler is installed.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"vconvert_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file, encoding='utf-8')
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    logger = logging.getLogger("vconvert")
    logger.info(f"Logging to {log_file}")
    return logger
