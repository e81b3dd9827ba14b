import os
import signal
from unittest.mock import Mock

import pytest

from purchase_watcher import runner
from purchase_watcher.config import WatcherConfig
from purchase_watcher.errors import DeliveryError, SnapshotError
from purchase_watcher.model import INACTIVE_STATUS
from purchase_watcher.runner import CycleOutcome, SnapshotWatcher
from purchase_watcher.snapshot import load_snapshot, save_snapshot


class RecordingSender:
    """Collects every payload; fails the first ``failures`` deliveries."""

    def __init__(self, failures=0):
        self.payloads = []
        self.failures = failures

    def __call__(self, records):
        if self.failures:
            self.failures -= 1
            raise DeliveryError("receiver is down")
        self.payloads.append(list(records))
        return 200


def _touch(path):
    """Move the modification time forward by one second."""
    st = os.stat(path)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))


@pytest.fixture
def workbook(register_factory, row_factory):
    return register_factory(
        [row_factory(registry_number="A"), row_factory(registry_number="B", status="допущены")]
    )


@pytest.fixture
def config(workbook, tmp_path):
    return WatcherConfig(
        workbook_path=workbook,
        app_url="http://localhost:8080/update",
        snapshot_path=tmp_path / "temp.json",
        poll_interval=0.01,
        lookback_days=None,
    )


def _ids(records):
    return sorted(r.registry_number for r in records)


# --------------------------------------------------------------------
# SINGLE CYCLES
# --------------------------------------------------------------------
def test_first_cycle_sends_all_active_records(config):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)

    assert watcher.run_cycle() is CycleOutcome.SENT

    assert len(sender.payloads) == 1
    assert _ids(sender.payloads[0]) == ["A", "B"]
    assert _ids(load_snapshot(config.snapshot_path)) == ["A", "B"]


def test_unchanged_modification_time_skips_work(config):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.run_cycle()

    assert watcher.run_cycle() is CycleOutcome.UNCHANGED
    assert len(sender.payloads) == 1


def test_primed_watcher_waits_for_a_modification(config):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.prime()

    assert watcher.run_cycle() is CycleOutcome.UNCHANGED
    assert sender.payloads == []
    assert not config.snapshot_path.exists()


def test_modified_workbook_sends_changeset(config, register_factory, row_factory):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.run_cycle()

    register_factory(
        [
            row_factory(registry_number="A", status="выиграли"),
            row_factory(registry_number="C"),
        ]
    )
    _touch(config.workbook_path)

    assert watcher.run_cycle() is CycleOutcome.SENT

    by_id = {r.registry_number: r for r in sender.payloads[1]}
    assert set(by_id) == {"A", "B", "C"}
    assert by_id["A"].status == "выиграли"
    assert by_id["B"].status == INACTIVE_STATUS
    assert by_id["C"].status == "идем"
    # The snapshot holds the active set only
    assert _ids(load_snapshot(config.snapshot_path)) == ["A", "C"]


def test_touched_workbook_without_changes(config):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.run_cycle()
    _touch(config.workbook_path)

    assert watcher.run_cycle() is CycleOutcome.NO_CHANGES
    assert len(sender.payloads) == 1


def test_failed_delivery_is_retried_on_next_poll(config, register_factory, row_factory):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.run_cycle()

    register_factory([row_factory(registry_number="A")])
    _touch(config.workbook_path)
    sender.failures = 1

    assert watcher.run_cycle() is CycleOutcome.SEND_FAILED
    # Nothing is persisted until the receiver accepts the update
    assert _ids(load_snapshot(config.snapshot_path)) == ["A", "B"]

    assert watcher.run_cycle() is CycleOutcome.SENT
    assert [(r.registry_number, r.status) for r in sender.payloads[1]] == [
        ("B", INACTIVE_STATUS)
    ]
    assert _ids(load_snapshot(config.snapshot_path)) == ["A"]


def test_failed_first_delivery_keeps_no_snapshot(config):
    sender = RecordingSender(failures=1)
    watcher = SnapshotWatcher(config, sender=sender)

    assert watcher.run_cycle() is CycleOutcome.SEND_FAILED
    assert not config.snapshot_path.exists()

    assert watcher.run_cycle() is CycleOutcome.SENT
    assert _ids(sender.payloads[0]) == ["A", "B"]


def test_all_rows_becoming_inactive(config, register_factory, row_factory):
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.run_cycle()

    register_factory([row_factory(registry_number="A", status="отказались")])
    _touch(config.workbook_path)

    assert watcher.run_cycle() is CycleOutcome.SENT
    assert _ids(sender.payloads[1]) == ["A", "B"]
    assert {r.status for r in sender.payloads[1]} == {INACTIVE_STATUS}
    assert load_snapshot(config.snapshot_path) == []


def test_empty_register_on_first_run(config, register_factory, row_factory):
    register_factory([row_factory(status="отказались")])
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)

    assert watcher.run_cycle() is CycleOutcome.EMPTY
    assert sender.payloads == []
    assert load_snapshot(config.snapshot_path) == []


def test_corrupt_snapshot_stops_the_cycle(config):
    config.snapshot_path.write_text("{broken", encoding="utf-8")
    sender = RecordingSender()
    watcher = SnapshotWatcher(config, sender=sender)

    with pytest.raises(SnapshotError):
        watcher.run_cycle()
    assert sender.payloads == []


def test_missing_workbook_propagates(config, tmp_path):
    config = config.with_overrides(workbook_path=tmp_path / "gone.xlsx")
    watcher = SnapshotWatcher(config, sender=RecordingSender())

    with pytest.raises(FileNotFoundError):
        watcher.run_cycle()


# --------------------------------------------------------------------
# WATCH LOOP
# --------------------------------------------------------------------
def test_run_polls_until_stopped(config, monkeypatch):
    watcher = SnapshotWatcher(config, sender=RecordingSender())
    calls = []

    def fake_cycle():
        calls.append(1)
        if len(calls) == 3:
            watcher.stop()
        return CycleOutcome.UNCHANGED

    monkeypatch.setattr(watcher, "run_cycle", fake_cycle)
    watcher.run()

    assert len(calls) == 3
    assert watcher.stopped


def test_controlled_stop_removes_snapshot(config):
    save_snapshot(config.snapshot_path, [])
    watcher = SnapshotWatcher(config, sender=RecordingSender())
    watcher.stop()

    watcher.run()

    assert not config.snapshot_path.exists()


def test_snapshot_kept_when_removal_disabled(config):
    config = config.with_overrides(remove_snapshot_on_exit=False)
    save_snapshot(config.snapshot_path, [])
    watcher = SnapshotWatcher(config, sender=RecordingSender())
    watcher.stop()

    watcher.run()

    assert config.snapshot_path.exists()


def test_failing_cycle_ends_loop_and_keeps_snapshot(config, monkeypatch):
    save_snapshot(config.snapshot_path, [])
    watcher = SnapshotWatcher(config, sender=RecordingSender())

    def broken_cycle():
        raise SnapshotError("broken")

    monkeypatch.setattr(watcher, "run_cycle", broken_cycle)
    with pytest.raises(SnapshotError):
        watcher.run()

    assert config.snapshot_path.exists()


def test_signal_handler_requests_stop(config):
    watcher = SnapshotWatcher(config, sender=RecordingSender())
    previous = signal.getsignal(signal.SIGINT)
    try:
        watcher.install_signal_handlers()
        handler = signal.getsignal(signal.SIGINT)
        handler(signal.SIGINT, None)
    finally:
        signal.signal(signal.SIGINT, previous)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, signal.SIG_DFL)

    assert watcher.stopped


def test_mistyped_snapshot_stops_the_cycle(config):
    first = SnapshotWatcher(config, sender=RecordingSender())
    first.run_cycle()
    text = config.snapshot_path.read_text(encoding="utf-8")
    text = text.replace('"max_price": 1000.5', '"max_price": null')
    config.snapshot_path.write_text(text, encoding="utf-8")
    sender = RecordingSender()

    with pytest.raises(SnapshotError):
        SnapshotWatcher(config, sender=sender).run_cycle()
    assert sender.payloads == []


def test_run_closes_its_own_http_sender(config, monkeypatch):
    http_sender = Mock()
    monkeypatch.setattr(runner, "HttpSender", Mock(return_value=http_sender))
    watcher = SnapshotWatcher(config)
    watcher.stop()

    watcher.run()

    runner.HttpSender.assert_called_once_with(
        config.app_url, timeout=config.send_timeout, logger=watcher.logger
    )
    http_sender.close.assert_called_once_with()


def test_run_closes_http_sender_when_start_fails(config, monkeypatch, tmp_path):
    http_sender = Mock()
    monkeypatch.setattr(runner, "HttpSender", Mock(return_value=http_sender))
    watcher = SnapshotWatcher(config.with_overrides(workbook_path=tmp_path / "gone.xlsx"))

    with pytest.raises(FileNotFoundError):
        watcher.run()
    http_sender.close.assert_called_once_with()


def test_run_leaves_injected_sender_open(config):
    sender = Mock()
    watcher = SnapshotWatcher(config, sender=sender)
    watcher.stop()

    watcher.run()

    sender.close.assert_not_called()
