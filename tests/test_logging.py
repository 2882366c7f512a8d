import time

from loguru import logger

from brokerprobe.core.logging import configure_logging
from brokerprobe.timer import Timer


def _capture() -> tuple[list[str], int]:
    messages: list[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    return messages, sink_id


def test_configure_logging_single_handler() -> None:
    assert len(configure_logging("INFO")) == 1


def test_debug_scopes_add_filtered_handler() -> None:
    handler_ids = configure_logging("INFO", debug_scopes=("core.phase_barrier", " "))
    assert len(handler_ids) == 2


def test_debug_scopes_redundant_at_debug_level() -> None:
    assert len(configure_logging("DEBUG", debug_scopes=("core.round",))) == 1


def test_timer_logs_elapsed_milliseconds() -> None:
    messages, sink_id = _capture()
    try:
        with Timer("Consumer") as timer:
            time.sleep(0.01)
    finally:
        logger.remove(sink_id)

    assert timer.elapsed_ms >= 9
    assert messages == [f"Consumer Elapsed: {timer.elapsed_ms} milliseconds."]


def test_timer_logs_even_when_block_raises() -> None:
    messages, sink_id = _capture()
    timer = Timer("Producer")
    try:
        with timer:
            raise KeyError("boom")
    except KeyError:
        pass
    finally:
        logger.remove(sink_id)

    assert messages[-1].startswith("Producer Elapsed:")


def test_timer_can_be_silenced() -> None:
    messages, sink_id = _capture()
    try:
        with Timer("quiet", log=False) as timer:
            pass
    finally:
        logger.remove(sink_id)

    assert messages == []
    assert timer.elapsed_ms >= 0
