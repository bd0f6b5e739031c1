from tracking.common.config import Settings
from tracking.common.logger import service_fields


def test_service_fields_stamp_every_event():
    processor = service_fields(Settings(service_name="tracking-eu", environment="production"))

    event = processor(None, "info", {"event": "Event log sent to Kafka"})

    assert event == {
        "event": "Event log sent to Kafka",
        "service": "tracking-eu",
        "environment": "production",
    }


def test_service_fields_keep_explicit_values():
    processor = service_fields(Settings(service_name="tracking-eu"))

    event = processor(None, "info", {"event": "x", "service": "kafka-relay"})

    assert event["service"] == "kafka-relay"
