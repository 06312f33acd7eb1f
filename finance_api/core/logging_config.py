# finance_api/core/logging_config.py
import logging
import sys

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    root = logging.getLogger("finance_api")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # uvicorn --reload imports main twice
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)

    root.propagate = False
    return root
