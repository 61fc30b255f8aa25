# tests/test_cli.py
from __future__ import annotations

import json

import pytest

import rangekit.cli as cli
from rangekit.config import ServiceConfig
from rangekit.types import RunOutcome, RunRequest, RunStatus

ENV = {"RANGEKIT_TOPIC": "file-partitions", "RANGEKIT_BOOTSTRAP_SERVERS": "localhost:9092"}


@pytest.fixture
def quiet_main(monkeypatch):
    """Stub logging setup and the process title so main() leaves global state alone."""
    monkeypatch.setattr(cli, "setup_logger", lambda *a, **k: None, raising=True)
    monkeypatch.setattr(cli.setproctitle, "setproctitle", lambda title: None, raising=True)
    for name, value in ENV.items():
        monkeypatch.setenv(name, value)


def test_parser_partition_command():
    args = cli.create_parser().parse_args(
        ["partition", "--bucket", "files", "--key", "a.txt", "--partition-size", "1024", "--progress"]
    )
    assert args.command == "partition"
    assert args.bucket == "files"
    assert args.partition_size == 1024
    assert args.progress is True


def test_build_config_cli_overrides_env():
    args = cli.create_parser().parse_args(
        ["partition", "--bucket", "b", "--key", "k", "--topic", "other-topic", "--window", "4096"]
    )
    config = cli.build_config(args, environ=ENV)

    assert config.topic == "other-topic"
    assert config.bootstrap_servers == "localhost:9092"
    assert config.partition.boundary_probe_window_bytes == 4096


def test_run_requests_end_to_end(memory_store, fake_producer, capsys):
    store = memory_store({("files", "a.txt"): b"one\ntwo\nthree\nfour\n"})
    producer = fake_producer()
    config = ServiceConfig.from_env(dict(ENV, RANGEKIT_PARTITION_SIZE="6", RANGEKIT_PROBE_WINDOW="8"))
    requests = [RunRequest("files", "a.txt", "run-1"), RunRequest("files", "a.txt", "run-1")]

    outcomes = cli.run_requests(requests, config, store=store, producer=producer)

    statuses = sorted(o.status.value for o in outcomes)
    assert statuses == ["completed", "skipped"]
    assert producer.closed is False
    out = capsys.readouterr().out
    assert "Final Summary" in out


def test_run_requests_with_sqlite_registry(tmp_path, memory_store, fake_producer):
    store = memory_store({("files", "a.txt"): b"one\ntwo\n"})
    config = ServiceConfig.from_env(dict(ENV, RANGEKIT_REGISTRY_PATH=str(tmp_path / "runs.db")))
    request = RunRequest("files", "a.txt", "run-1")

    first = cli.run_requests([request], config, store=store, producer=fake_producer())
    second = cli.run_requests([request], config, store=store, producer=fake_producer())

    assert first[0].status is RunStatus.COMPLETED
    assert second[0].status is RunStatus.SKIPPED


def test_main_partition_returns_zero_on_success(quiet_main, monkeypatch):
    seen = {}

    def _run(requests, config, **kwargs):
        seen["requests"] = requests
        seen["progress"] = kwargs.get("show_progress")
        return [RunOutcome.completed(requests[0].run_id, 1)]

    monkeypatch.setattr(cli, "run_requests", _run, raising=True)

    assert cli.main(["partition", "--bucket", "files", "--key", "a.txt", "--run-id", "42"]) == 0
    assert seen["requests"] == [RunRequest("files", "a.txt", "42")]
    assert seen["progress"] is False


def test_main_returns_one_when_a_run_aborts(quiet_main, monkeypatch):
    monkeypatch.setattr(
        cli, "run_requests",
        lambda requests, config, **kw: [RunOutcome.aborted(requests[0].run_id, "boom")],
        raising=True,
    )
    assert cli.main(["partition", "--bucket", "files", "--key", "a.txt"]) == 1


def test_main_notify_reads_message_file(quiet_main, monkeypatch, tmp_path):
    message = {"Records": [
        {"eventName": "ObjectCreated:Put",
         "s3": {"bucket": {"name": "files"}, "object": {"key": "a.txt", "sequencer": "01"}}},
        {"eventName": "ObjectCreated:Put",
         "s3": {"bucket": {"name": "files"}, "object": {"key": "b.txt", "sequencer": "02"}}},
    ]}
    path = tmp_path / "event.json"
    path.write_text(json.dumps(message), encoding="utf-8")
    seen = {}

    def _run(requests, config, **kwargs):
        seen["keys"] = [r.object_key for r in requests]
        seen["workers"] = config.max_workers
        return [RunOutcome.completed(r.run_id, 1) for r in requests]

    monkeypatch.setattr(cli, "run_requests", _run, raising=True)

    assert cli.main(["notify", str(path), "--progress"]) == 0
    assert seen["keys"] == ["a.txt", "b.txt"]
    assert seen["workers"] == 1


def test_main_notify_without_records_does_nothing(quiet_main, monkeypatch, tmp_path):
    path = tmp_path / "event.json"
    path.write_text(json.dumps({"Event": "s3:TestEvent"}), encoding="utf-8")
    monkeypatch.setattr(cli, "run_requests", lambda *a, **k: pytest.fail("should not run"), raising=True)

    assert cli.main(["notify", str(path)]) == 0


def test_main_rejects_missing_configuration(quiet_main, monkeypatch, capsys):
    monkeypatch.delenv("RANGEKIT_TOPIC")
    assert cli.main(["partition", "--bucket", "files", "--key", "a.txt"]) == 2
    assert "Kafka topic is not configured" in capsys.readouterr().err


def test_main_rejects_unreadable_message(quiet_main, tmp_path):
    assert cli.main(["notify", str(tmp_path / "missing.json")]) == 2
