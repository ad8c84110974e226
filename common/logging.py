import logging
from contextlib import contextmanager
from typing import Iterator


class CountingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.warnings = 0
        self.errors = 0

    def emit(self, record):
        if record.levelno >= logging.ERROR:
            self.errors += 1
        elif record.levelno >= logging.WARNING:
            self.warnings += 1


@contextmanager
def counting_log_handler(logger: logging.Logger = None) -> Iterator[CountingHandler]:
    """Attach a CountingHandler to ``logger`` (root by default) for the block."""
    target = logger or logging.getLogger()
    counter = CountingHandler()
    target.addHandler(counter)
    try:
        yield counter
    finally:
        target.removeHandler(counter)
