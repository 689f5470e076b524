from __future__ import annotations

import sys
import threading
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Row progress display with tqdm (TTY only).

In non-TTY environments (CI, log capture) no bar is created so the output does
not fill up with ANSI control sequences. Updates may come from worker threads.
"""

__all__ = [
    "RowProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class RowProgress:
    """Progress bar over the rows of one batch."""

    def __init__(self, total_rows: int, *, description: str = "Rows", enabled: bool | None = None) -> None:
        self.total_rows = total_rows
        self.description = description
        self.done = 0
        self.failed = 0
        self.enabled = is_tty_enabled() if enabled is None else enabled
        self._lock = threading.Lock()
        self.pbar: TqdmType[Any] | None
        if self.enabled and total_rows > 1:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def row_done(self, success: bool = True) -> None:
        with self._lock:
            self.done += 1
            if not success:
                self.failed += 1
            if self.pbar is not None:
                self.pbar.update(1)
                self.pbar.set_postfix(failed=self.failed)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> RowProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
