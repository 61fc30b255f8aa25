# tests/publish/test_kafka_producer.py
from __future__ import annotations

import pytest

import rangekit.publish.kafka as kafka_mod
from rangekit.errors import InvalidInput


def test_create_producer_applies_defaults(monkeypatch):
    captured = {}

    def _fake_producer(**kwargs):
        captured.update(kwargs)
        return "producer"

    monkeypatch.setattr(kafka_mod, "KafkaProducer", _fake_producer, raising=True)

    assert kafka_mod.create_producer("k1:9092, k2:9092") == "producer"
    assert captured["bootstrap_servers"] == ["k1:9092", "k2:9092"]
    assert captured["acks"] == "all"
    assert captured["retries"] == 3
    assert captured["max_in_flight_requests_per_connection"] == 5


def test_overrides_win(monkeypatch):
    captured = {}
    monkeypatch.setattr(kafka_mod, "KafkaProducer", lambda **kw: captured.update(kw), raising=True)

    kafka_mod.create_producer("k1:9092", linger_ms=50, compression_type=None)

    assert captured["linger_ms"] == 50
    assert captured["compression_type"] is None


@pytest.mark.parametrize("servers", ["", "   "])
def test_empty_bootstrap_servers_rejected(servers):
    with pytest.raises(InvalidInput):
        kafka_mod.create_producer(servers)
