"""Watch the purchase register and forward changes to the receiving app.

The watcher keeps a small persistent store: a JSON file with the active
records of the previous check. When the workbook's modification time
changes, the new active records are compared with that snapshot and only
the differences are sent. Delivery is at-least-once: a crash between
sending and saving the snapshot re-sends the same changes on restart.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from purchase_watcher import compare, excel_reader, snapshot
from purchase_watcher.config import WatcherConfig
from purchase_watcher.errors import DeliveryError
from purchase_watcher.model import PurchaseRecord
from purchase_watcher.sender import HttpSender
from purchase_watcher.serial_time import Moment

_default_logger = logging.getLogger(__name__)

Sender = Callable[[List[PurchaseRecord]], Any]


class CycleOutcome(str, Enum):
    """What a single check of the workbook ended with."""

    UNCHANGED = "unchanged"  # modification time did not move
    EMPTY = "empty"  # nothing active and nothing to report
    NO_CHANGES = "no_changes"  # snapshot matches the workbook
    SENT = "sent"  # changes delivered and snapshot saved
    SEND_FAILED = "send_failed"  # delivery failed; retried on the next poll


def last_modified_time(path: Path) -> int:
    """Modification time of ``path`` in nanoseconds; errors propagate."""
    return os.stat(path).st_mtime_ns


class SnapshotWatcher:
    """Single-worker polling loop around extract, compare, send and persist."""

    def __init__(
        self,
        config: WatcherConfig,
        *,
        sender: Optional[Sender] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or _default_logger
        self._http_sender: Optional[HttpSender] = None  # owned, closed by run()
        if sender is None:
            self._http_sender = HttpSender(
                config.app_url, timeout=config.send_timeout, logger=self.logger
            )
            sender = self._http_sender
        self.sender: Sender = sender
        self._stop = threading.Event()
        self._last_mod_time: Optional[int] = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the loop to exit; an in-flight cycle always completes."""
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Stop gracefully on Ctrl+C (and SIGTERM where the platform has it)."""

        def handler(signum: int, _frame: object) -> None:
            self.logger.info("received signal %s, exiting...", signum)
            self.stop()

        signal.signal(signal.SIGINT, handler)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, handler)

    def prime(self) -> None:
        """Remember the current modification time as already processed."""
        self._last_mod_time = last_modified_time(self.config.workbook_path)

    def _accept(self, mod_time: int) -> None:
        self._last_mod_time = mod_time
        try:
            moment = Moment.from_timestamp(mod_time / 1_000_000_000)
        except ValueError:
            self.logger.info("couldn't parse time from the file modification time")
            return
        self.logger.info(
            "last modification time is: %s", moment.format(self.config.timestamp_offset)
        )

    def _deliver(self, records: List[PurchaseRecord]) -> bool:
        try:
            self.sender(records)
        except DeliveryError as exc:
            self.logger.error("error while sending update: %s", exc)
            return False
        return True

    def run_cycle(self) -> CycleOutcome:
        """Check the workbook once and forward whatever changed."""
        config = self.config
        mod_time = last_modified_time(config.workbook_path)
        if self._last_mod_time is not None and mod_time == self._last_mod_time:
            return CycleOutcome.UNCHANGED

        self.logger.info("file change detected", extra={"path": str(config.workbook_path)})

        # No active rows is an empty active set: previous records become inactive
        new_snapshot = (
            excel_reader.extract_active_records(
                config.workbook_path, config.extraction, logger=self.logger
            )
            or []
        )

        old_snapshot = snapshot.load_snapshot(config.snapshot_path)
        if old_snapshot is None:
            payload = new_snapshot  # First run: everything active is news
            if not payload:
                snapshot.save_snapshot(config.snapshot_path, new_snapshot)
                self._accept(mod_time)
                return CycleOutcome.EMPTY
        else:
            changeset = compare.compare_snapshots(old_snapshot, new_snapshot)
            if changeset.is_empty:
                self.logger.info("no changes in records")
                snapshot.save_snapshot(config.snapshot_path, new_snapshot)
                self._accept(mod_time)
                return CycleOutcome.NO_CHANGES
            self.logger.info(
                "changes found: %d new, %d changed, %d inactive",
                len(changeset.new),
                len(changeset.changed),
                len(changeset.inactive),
            )
            payload = changeset.records

        if not self._deliver(payload):
            return CycleOutcome.SEND_FAILED

        snapshot.save_snapshot(config.snapshot_path, new_snapshot)
        self._accept(mod_time)
        return CycleOutcome.SENT

    def run(self) -> None:
        """Poll until stopped; IO, workbook and snapshot errors end the loop."""
        try:
            self.prime()
            self.logger.info("start watching to '%s'", self.config.workbook_path)
            while not self.stopped:
                if self._stop.wait(self.config.poll_interval):
                    break
                self.run_cycle()
        finally:
            if self.config.remove_snapshot_on_exit and self.stopped:
                self.logger.info("removing any temp files...")
                snapshot.remove_snapshot(self.config.snapshot_path)
            if self._http_sender is not None:
                self._http_sender.close()


def watch(
    config: WatcherConfig,
    *,
    sender: Optional[Sender] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Watch the register described by ``config`` until interrupted."""
    watcher = SnapshotWatcher(config, sender=sender, logger=logger)
    watcher.install_signal_handlers()
    watcher.run()


__all__ = ["CycleOutcome", "SnapshotWatcher", "last_modified_time", "watch"]
