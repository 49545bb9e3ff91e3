import logging

from shared.log import GenericFormatter, get_logger, log_event, set_level
from shared.pubsub import MessageEvent


def test_set_level_applies_to_configured_loggers():
    logger = get_logger("guide.tests.levels")
    try:
        set_level("WARNING")
        assert logger.level == logging.WARNING
        set_level("debug")
        assert logger.level == logging.DEBUG
    finally:
        set_level("DEBUG")


def test_generic_formatter_prefixes_context():
    formatter = GenericFormatter(fmt="%(message)s")
    record = logging.makeLogRecord({
        "msg": "Publish failed",
        "client_id": "8f14e45f-ceea-4e1b",
        "channel": "the_guide",
        "timetoken": 15870497400000000,
    })

    assert formatter.format(record) == "[client=8f14e45f channel=the_guide timetoken=15870497400000000] Publish failed"
    assert record.msg == "Publish failed"


def test_log_event_extracts_event_context():
    logger = logging.getLogger("guide.tests.capture")
    records = []
    handler = logging.Handler()
    handler.emit = records.append
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        log_event(logger, "info", "Inbound event",
                  event=MessageEvent("the_guide", {}, timetoken=5), client_id="arthur")
    finally:
        logger.removeHandler(handler)

    (record,) = records
    assert record.event_kind == "MessageEvent"
    assert record.channel == "the_guide"
    assert record.timetoken == 5
    assert record.client_id == "arthur"
