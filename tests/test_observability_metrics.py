import json
import logging

from pennyekart.observability.logging_config import JsonFormatter
from pennyekart.observability.metrics import (
    get_counter_value,
    get_metrics_snapshot,
    increment_counter,
    observe_latency,
    record_event,
    reset_metrics,
    set_gauge,
    timed,
)


def test_metrics_snapshot_accumulates_counts():
    reset_metrics()
    increment_counter("flash_sale_lookup_misses_total")
    increment_counter("flash_sale_lookup_misses_total", amount=2, labels={"source": "seller_product"})
    set_gauge("flash_sales_visible", 5)
    observe_latency("record_store_latency_ms", 100, labels={"operation": "aggregate_line_items"})
    observe_latency("record_store_latency_ms", 50, labels={"operation": "aggregate_line_items"})

    snapshot = get_metrics_snapshot()
    counters = snapshot["counters"]["flash_sale_lookup_misses_total"]
    assert len(counters) == 2
    assert get_counter_value("flash_sale_lookup_misses_total", {"source": "seller_product"}) == 2

    gauges = snapshot["gauges"]["flash_sales_visible"]
    assert gauges[0]["value"] == 5

    hist = snapshot["histograms"]["record_store_latency_ms"][0]["stats"]
    assert hist["count"] == 2
    assert hist["max"] == 100
    assert hist["avg"] == 75


def test_timed_records_even_when_block_raises():
    reset_metrics()
    try:
        with timed("blob_write_ms"):
            raise OSError("disk full")
    except OSError:
        pass

    stats = get_metrics_snapshot()["histograms"]["blob_write_ms"][0]["stats"]
    assert stats["count"] == 1


def test_event_log_is_bounded():
    reset_metrics()
    for index in range(150):
        record_event("flash_sale_toggled", {"index": index})

    events = get_metrics_snapshot()["events"]
    assert len(events) == 100
    assert events[-1]["payload"] == {"index": 149}


def test_json_formatter_keeps_domain_fields():
    record = logging.LogRecord("pennyekart", logging.INFO, __file__, 1, "Deleted flash sale %s", ("fs-1",), None)
    record.flash_sale_id = "fs-1"

    line = json.loads(JsonFormatter().format(record))

    assert line["message"] == "Deleted flash sale fs-1"
    assert line["flash_sale_id"] == "fs-1"
    assert line["level"] == "INFO"
