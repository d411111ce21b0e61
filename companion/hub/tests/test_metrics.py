import threading

from companion.hub.app.core.metrics import Gauge, HubMetrics


def test_gauge_counts_across_threads():
    gauge = Gauge("connections")

    def churn():
        for _ in range(1000):
            gauge.inc()
            gauge.dec()
        gauge.inc()

    threads = [threading.Thread(target=churn) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert gauge.value == 8


def test_gauge_read_waits_for_writer():
    gauge = Gauge("connections")
    seen = []
    reader = threading.Thread(target=lambda: seen.append(gauge.value))

    with gauge._lock:
        reader.start()
        reader.join(timeout=0.1)
        assert reader.is_alive()
        gauge._value = 5

    reader.join()
    assert seen == [5]


def test_snapshot_lists_every_gauge():
    metrics = HubMetrics()
    metrics.connections.inc()
    metrics.authorized_connections.inc(2)

    assert metrics.snapshot() == {
        "connections": 1,
        "initialized_connections": 0,
        "authorized_connections": 2,
    }
