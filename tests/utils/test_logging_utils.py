import logging

from emberorm.utils import camel_to_snake, get_logger, join_table_name, set_correlation_id, time_call
from emberorm.utils.logging import get_correlation_id


def test_get_logger_is_namespaced():
    assert get_logger("engine").name == "emberorm.engine"


def test_correlation_id_round_trip():
    token = set_correlation_id("request-42")

    assert token == "request-42"
    assert get_correlation_id() == "request-42"
    assert set_correlation_id() != "request-42"


def test_time_call_logs_slow_blocks_as_warnings(caplog):
    logger = get_logger("tests.timer")
    caplog.set_level(logging.DEBUG, logger="emberorm.tests.timer")

    with time_call("fast", logger, threshold_ms=10_000) as timer:
        pass
    with time_call("slow", logger, statement="fetch user", params=[1], threshold_ms=0):
        pass

    assert timer.elapsed_ms >= 0
    fast, slow = caplog.records[-2:]
    assert fast.levelno == logging.DEBUG
    assert slow.levelno == logging.WARNING
    assert slow.statement == "fetch user"
    assert slow.params == [1]


def test_naming_helpers():
    assert camel_to_snake("BlogPost") == "blog_post"
    assert camel_to_snake("HTTPRequest") == "http_request"
    assert join_table_name("Post", "Tag") == "_PostToTag"
    assert join_table_name("User", "User", "follows") == "_follows"
