"""File writer для логов с батчингом."""

import asyncio
import contextlib
import sys
from collections.abc import Sequence
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import Any, TextIO

from xi_login.logger.types import LogEntry


class FileWriter:
    """FileWriter дописывает логи в текстовый файл с батчингом.

    With ``append_date`` the file name gets a ``_YYYY-MM-DD`` suffix and a new
    file is opened when the date changes.
    """

    def __init__(
        self,
        path: str | Path,
        append_date: bool = False,
        batch_size: int = 100,
        flush_interval: float = 5.0,
    ) -> None:
        """
        Initialize FileWriter.

        Args:
            path: Base path of the log file
            append_date: Rotate daily, appending the date to the file name
            batch_size: Размер батча для flush
            flush_interval: Интервал автоматического flush в секундах
        """
        self.path = Path(path)
        self.append_date = append_date
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.buffer: list[LogEntry] = []
        self._lock = asyncio.Lock()
        self._file: TextIO | None = None
        self._opened_for: date | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    def current_path(self, today: date | None = None) -> Path:
        """Path of the file that entries for ``today`` go to."""
        if not self.append_date:
            return self.path
        today = today or date.today()
        return self.path.with_name(
            f"{self.path.stem}_{today.isoformat()}{self.path.suffix}"
        )

    async def connect(self) -> None:
        """Открывает файл и запускает фоновый flush."""
        try:
            self._open(date.today())
        except OSError as e:
            print(
                f"[LOGGER ERROR] Failed to open log file {self.path}: {e}",
                file=sys.stderr,
            )
            raise

        self._flush_task = asyncio.create_task(self._background_flush())

    def _open(self, today: date) -> None:
        target = self.current_path(today)
        target.parent.mkdir(parents=True, exist_ok=True)
        if self._file:
            self._file.close()
        self._file = open(target, "a", encoding="utf-8")
        self._opened_for = today

    async def write(self, entry: LogEntry) -> None:
        await self.write_batch((entry,))

    async def write_batch(self, entries: Sequence[LogEntry]) -> None:
        """Buffer entries; a full buffer is written out immediately."""
        if self._closed:
            return

        async with self._lock:
            self.buffer.extend(entries)
            if len(self.buffer) >= self.batch_size:
                await self._flush_locked()

    async def flush(self) -> None:
        """Принудительно записывает буфер в файл."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        """Записывает буфер в файл (должен вызываться с захваченным lock)."""
        if not self.buffer or not self._file:
            return

        try:
            # Ротация по дате первой записи в батче
            if self.append_date:
                entry_day = self.buffer[0].timestamp.date()
                if entry_day != self._opened_for:
                    self._open(entry_day)

            self._file.write("".join(entry.format() + "\n" for entry in self.buffer))
            self._file.flush()
            self.buffer.clear()

        except OSError as e:
            print(
                f"[LOGGER ERROR] Failed to write logs to {self.path}: {e}",
                file=sys.stderr,
            )
            # Fallback: stderr
            print("\n".join(entry.format() for entry in self.buffer), file=sys.stderr)
            self.buffer.clear()

    async def _background_flush(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.flush_interval)
            try:
                await self.flush()
            except Exception as e:
                print(f"[LOGGER ERROR] Background flush failed: {e}", file=sys.stderr)

    async def close(self) -> None:
        """Stop the background flush and write out what is left."""
        # Дать отработать уже запланированным Logger write-задачам
        await asyncio.sleep(0)
        self._closed = True

        task, self._flush_task = self._flush_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self.flush()

        if self._file:
            self._file.close()
            self._file = None


@asynccontextmanager
async def create_file_writer(
    path: str | Path,
    append_date: bool = False,
    batch_size: int = 100,
    flush_interval: float = 5.0,
) -> Any:
    """
    Context manager для создания FileWriter.

    Args:
        path: Base path of the log file
        append_date: Rotate daily, appending the date to the file name
        batch_size: Размер батча для flush
        flush_interval: Интервал автоматического flush в секундах

    Yields:
        FileWriter instance
    """
    writer = FileWriter(path, append_date, batch_size, flush_interval)
    await writer.connect()
    try:
        yield writer
    finally:
        await writer.close()
