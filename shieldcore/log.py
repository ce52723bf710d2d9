from __future__ import annotations

import logging
import os
import sys
from typing import IO

ALERT = logging.INFO + 1
"""
The ALERT logging level has the same urgency as info, but signals that the
user's attention should be drawn to the output, e.g. a degraded startup.
"""
logging.addLevelName(ALERT, "ALERT")


class ShieldFormatter(logging.Formatter):
    with_tab = "[%s][tab %s] %s"
    without_tab = "[%s] %s"

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        tab_id = getattr(record, "tab_id", None)
        if tab_id is not None:
            return self.with_tab % (time, tab_id, message)
        else:
            return self.without_tab % (time, message)


class ShieldLogHandler(logging.Handler):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._initiated_in_test = os.environ.get("PYTEST_CURRENT_TEST")

    def filter(self, record: logging.LogRecord) -> bool:
        # We can't remove stale handlers here because that would modify .handlers during iteration!
        return bool(
            super().filter(record)
            and (
                not self._initiated_in_test
                or self._initiated_in_test == os.environ.get("PYTEST_CURRENT_TEST")
            )
        )

    def install(self) -> None:
        if self._initiated_in_test:
            for h in list(logging.getLogger().handlers):
                if (
                    isinstance(h, ShieldLogHandler)
                    and h._initiated_in_test != self._initiated_in_test
                ):
                    h.uninstall()

        logging.getLogger().addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)


class TermLogHandler(ShieldLogHandler):
    def __init__(self, out: IO[str] | None = None):
        super().__init__()
        self.file: IO[str] = out or sys.stdout
        self.formatter = ShieldFormatter()

    def configure(self, verbosity: str) -> None:
        self.setLevel(verbosity.upper())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print(self.format(record), file=self.file)
        except OSError:
            # We cannot print, exit immediately.
            sys.exit(1)
