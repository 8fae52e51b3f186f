import io
import re
import threading
import time

import pytest

from boshutils.logger import (
    AsyncLogger,
    LogLevel,
    LogTag,
    Logger,
    as_string,
    levelify,
    new_async_writer_logger,
    new_logger,
    new_writer_logger,
)

WORKERS = 4
ITERATIONS = 200


def expected_log_format(tag, msg):
    return (
        rf"\[{tag}\] [0-9]{{4}}/[0-9]{{2}}/[0-9]{{2}} "
        rf"[0-9]{{2}}:[0-9]{{2}}:[0-9]{{2}} {msg}\n"
    )


class BlockingWriter:
    def __init__(self):
        self.lock = threading.Lock()
        self.buf = io.StringIO()

    def write(self, text):
        with self.lock:
            return self.buf.write(text)

    def getvalue(self):
        with self.lock:
            return self.buf.getvalue()


class IntervalWriter(BlockingWriter):
    def __init__(self, interval):
        super().__init__()
        self.interval = interval

    def write(self, text):
        with self.lock:
            time.sleep(self.interval)
            return self.buf.write(text)


def run_concurrent_prefix(logger, out):
    """Log from several threads; return the number of well-formed lines."""
    start = threading.Event()

    def work(index):
        s = str(index % 10)
        tag = s * 5
        msg = s * 20 + "\n"
        start.wait()
        for _ in range(ITERATIONS):
            logger.debug(tag, msg)
            logger.error(tag, msg)

    threads = [threading.Thread(target=work, args=(i,)) for i in range(WORKERS)]
    for t in threads:
        t.start()
    start.set()
    for t in threads:
        t.join()
    logger.flush()

    checked = 0
    for line in out.getvalue().split("\n"):
        if len(line) < 25:
            continue
        c = line[1]
        assert line.startswith(f"[{c * 5}] ")
        assert line.endswith(c * 20)
        checked += 1
    return checked


class TestAsString:
    @pytest.mark.parametrize(
        "level,name",
        [
            (LogLevel.NONE, "NONE"),
            (LogLevel.DEBUG, "DEBUG"),
            (LogLevel.INFO, "INFO"),
            (LogLevel.WARN, "WARN"),
            (LogLevel.ERROR, "ERROR"),
        ],
    )
    def test_known_levels(self, level, name):
        assert as_string(level) == name

    def test_unknown_defaults_to_debug(self):
        assert as_string(2983472) == "DEBUG"


class TestLevelify:
    @pytest.mark.parametrize(
        "text,level",
        [
            ("NONE", LogLevel.NONE),
            ("none", LogLevel.NONE),
            ("DEBUG", LogLevel.DEBUG),
            ("debug", LogLevel.DEBUG),
            ("INFO", LogLevel.INFO),
            ("info", LogLevel.INFO),
            ("WARN", LogLevel.WARN),
            ("warn", LogLevel.WARN),
            ("ERROR", LogLevel.ERROR),
            ("error", LogLevel.ERROR),
        ],
    )
    def test_converts(self, text, level):
        assert levelify(text) == level

    @pytest.mark.parametrize("text", ["unknown", ""])
    def test_unknown(self, text):
        with pytest.raises(ValueError) as info:
            levelify(text)
        assert str(info.value) == (
            f"Unknown LogLevel string '{text}', expected one of "
            "[DEBUG, INFO, WARN, ERROR, NONE]"
        )


class TestLogger:
    def test_debug(self):
        out = io.StringIO()
        new_writer_logger(LogLevel.DEBUG, out).debug("TAG", "some %s info to log", "awesome")
        pattern = expected_log_format("TAG", "DEBUG - some awesome info to log")
        assert len(re.findall(pattern, out.getvalue())) == 1

    def test_debug_with_details(self):
        out = io.StringIO()
        new_writer_logger(LogLevel.DEBUG, out).debug_with_details("TAG", "some info to log", "awesome")
        assert re.search(expected_log_format("TAG", "DEBUG - some info to log"), out.getvalue())
        assert "\n********************\nawesome\n********************" in out.getvalue()

    def test_info(self):
        out = io.StringIO()
        new_writer_logger(LogLevel.INFO, out).info("TAG", "some %s info to log", "awesome")
        pattern = expected_log_format("TAG", "INFO - some awesome info to log")
        assert len(re.findall(pattern, out.getvalue())) == 1

    def test_warn(self):
        out = io.StringIO()
        new_writer_logger(LogLevel.WARN, out).warn("TAG", "some %s info to log", "awesome")
        pattern = expected_log_format("TAG", "WARN - some awesome info to log")
        assert len(re.findall(pattern, out.getvalue())) == 1

    def test_error(self):
        out = io.StringIO()
        new_writer_logger(LogLevel.ERROR, out).error("TAG", "some %s info to log", "awesome")
        pattern = expected_log_format("TAG", "ERROR - some awesome info to log")
        assert len(re.findall(pattern, out.getvalue())) == 1

    def test_error_with_details(self):
        out = io.StringIO()
        new_writer_logger(LogLevel.ERROR, out).error_with_details("TAG", "some error to log", "awesome")
        assert re.search(expected_log_format("TAG", "ERROR - some error to log"), out.getvalue())
        assert "\n********************\nawesome\n********************" in out.getvalue()

    def test_concurrent_prefix(self):
        out = BlockingWriter()
        logger = new_writer_logger(LogLevel.DEBUG, out)
        assert run_concurrent_prefix(logger, out) == WORKERS * ITERATIONS * 2

    @pytest.mark.parametrize(
        "level,expected",
        [
            (LogLevel.DEBUG, {"DEBUG", "INFO", "WARN", "ERROR"}),
            (LogLevel.INFO, {"INFO", "WARN", "ERROR"}),
            (LogLevel.WARN, {"WARN", "ERROR"}),
            (LogLevel.ERROR, {"ERROR"}),
        ],
    )
    def test_level_filtering(self, level, expected):
        out = io.StringIO()
        logger = new_writer_logger(level, out)
        logger.debug("DEBUG", "some debug log")
        logger.info("INFO", "some info log")
        logger.warn("WARN", "some warn log")
        logger.error("ERROR", "some error log")
        present = {name for name in ("DEBUG", "INFO", "WARN", "ERROR") if name in out.getvalue()}
        assert present == expected

    def test_forced_debug(self):
        out = io.StringIO()
        logger = new_writer_logger(LogLevel.ERROR, out)
        logger.toggle_forced_debug()
        logger.debug("TOGGLED_DEBUG", "some debug log")
        logger.info("TOGGLED_INFO", "some info log")
        logger.warn("TOGGLED_WARN", "some warn log")
        logger.error("TOGGLED_ERROR", "some error log")
        for tag in ("TOGGLED_DEBUG", "TOGGLED_INFO", "TOGGLED_WARN", "TOGGLED_ERROR"):
            assert tag in out.getvalue()

    def test_forced_debug_toggled_back(self):
        out = io.StringIO()
        logger = new_writer_logger(LogLevel.ERROR, out)
        logger.toggle_forced_debug()
        logger.toggle_forced_debug()
        logger.debug("STANDARD_DEBUG", "some debug log")
        logger.info("STANDARD_INFO", "some info log")
        logger.warn("STANDARD_WARN", "some warn log")
        logger.error("STANDARD_ERROR", "some error log")
        text = out.getvalue()
        assert "STANDARD_DEBUG" not in text
        assert "STANDARD_INFO" not in text
        assert "STANDARD_WARN" not in text
        assert "STANDARD_ERROR" in text

    def test_rfc3339_timestamps(self):
        out = io.StringIO()
        logger = new_writer_logger(LogLevel.ERROR, out)
        logger.use_rfc3339_timestamps()
        logger.error("TAG", "some error log")
        pattern = (
            r"\[TAG\] [0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}"
            r"\.[0-9]{9}Z ERROR - some error log\n"
        )
        assert len(re.findall(pattern, out.getvalue())) == 1

    def test_tags_override_level(self):
        out = io.StringIO()
        logger = new_writer_logger(LogLevel.ERROR, out)
        logger.use_tags([LogTag("ForwardHandler", 0)])
        logger.debug("STANDARD_DEBUG", "some debug log")
        logger.info("STANDARD_INFO", "some info log")
        logger.warn("STANDARD_WARN", "some warn log")
        logger.error("STANDARD_ERROR", "some error log")
        logger.debug("ForwardHandler", "debug logs to show")
        text = out.getvalue()
        assert "STANDARD_DEBUG" not in text
        assert "STANDARD_INFO" not in text
        assert "STANDARD_WARN" not in text
        assert "STANDARD_ERROR" in text
        assert "ForwardHandler" in text

    def test_does_not_block_while_formatting(self):
        class SlowStr:
            def __str__(self):
                time.sleep(0.5)
                return "Hello, Slow Stringer!"

        out = io.StringIO()
        logger = new_writer_logger(LogLevel.ERROR, out)
        started = threading.Event()

        def slow_logging():
            started.set()
            logger.error("TAG", "%s", SlowStr())

        thread = threading.Thread(target=slow_logging)
        thread.start()
        started.wait()
        time.sleep(0.05)
        begin = time.monotonic()
        logger.error("TAG", "1")
        elapsed = time.monotonic() - begin
        thread.join()
        assert elapsed < 0.125
        assert "Hello, Slow Stringer!" in out.getvalue()

    def test_handle_panic_logs_and_exits(self):
        out = io.StringIO()
        logger = new_writer_logger(LogLevel.DEBUG, out)
        with pytest.raises(SystemExit) as info:
            with logger.handle_panic("TAG"):
                raise RuntimeError("boom")
        assert info.value.code == 2
        assert "ERROR - Panic: boom" in out.getvalue()
        assert "RuntimeError" in out.getvalue()

    def test_handle_panic_without_exception_is_silent(self):
        out = io.StringIO()
        logger = new_writer_logger(LogLevel.DEBUG, out)
        with logger.handle_panic("TAG"):
            value = 1 + 1
        assert value == 2
        assert out.getvalue() == ""

    def test_new_logger_writes_to_stderr(self, capsys):
        logger = new_logger(LogLevel.INFO)
        logger.info("TAG", "hello %d", 5)
        assert "INFO - hello 5" in capsys.readouterr().err

    def test_plain_logger_class(self):
        out = io.StringIO()
        logger = Logger(LogLevel.WARN, out)
        logger.info("TAG", "hidden")
        logger.warn("TAG", "shown")
        assert "hidden" not in out.getvalue()
        assert "WARN - shown" in out.getvalue()


class TestAsyncLogger:
    def test_debug(self):
        out = io.StringIO()
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        logger.debug("TAG", "some %s info to log", "awesome")
        logger.flush()
        pattern = expected_log_format("TAG", "DEBUG - some awesome info to log")
        assert len(re.findall(pattern, out.getvalue())) == 1

    def test_does_not_block_when_writer_blocked(self):
        out = BlockingWriter()
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        out.lock.acquire()
        try:
            def produce():
                for _ in range(10):
                    logger.info("TAG", "Make sure we are not just buffering bytes: %s", "A" * 4096)
                    logger.error("TAG", "Make sure we are not just buffering bytes: %s", "A" * 4096)

            thread = threading.Thread(target=produce)
            thread.start()
            thread.join(timeout=2)
            assert not thread.is_alive()
            assert out.buf.getvalue() == ""
        finally:
            out.lock.release()

    def test_copies_queued_messages(self):
        out = BlockingWriter()
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        out.lock.acquire()
        logger.debug("TAG", "ABCDEFGHIJ")
        logger.debug("TAG", "abcdefghij")
        out.lock.release()
        logger.flush()
        lines = out.getvalue().strip().split("\n")
        assert len(lines) == 2
        assert lines[0].endswith("ABCDEFGHIJ")
        assert lines[1].endswith("abcdefghij")

    def test_continuously_flushes(self):
        out = BlockingWriter()
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        out.lock.acquire()
        for _ in range(10):
            logger.debug("TAG", "Queued log message")
        assert out.buf.getvalue() == ""
        out.lock.release()
        deadline = time.monotonic() + 2
        while not out.getvalue() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert "Queued log message" in out.getvalue()

    def test_flush_timeout(self):
        out = BlockingWriter()
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        out.lock.acquire()
        logger.debug("TAG", "something")
        with pytest.raises(TimeoutError, match="flush timed out"):
            logger.flush_timeout(0.01)
        out.lock.release()
        logger.flush_timeout(2)
        assert out.getvalue().strip().endswith("something")

    def test_flush_does_not_block_writes(self):
        out = IntervalWriter(0.01)
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        out.lock.acquire()
        for _ in range(10):
            logger.debug("NEW", "message")
        out.lock.release()
        flusher = threading.Thread(target=logger.flush, daemon=True)
        flusher.start()

        def produce():
            for _ in range(10):
                logger.debug("NEW", "message")

        producer = threading.Thread(target=produce)
        producer.start()
        producer.join(timeout=1)
        assert not producer.is_alive()
        flusher.join(timeout=2)
        logger.flush()
        assert out.getvalue().count("DEBUG - message") == 20

    def test_only_flushes_current_queue(self):
        out = IntervalWriter(0.01)
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        out.lock.acquire()
        for _ in range(10):
            logger.debug("QUEUED", "queued")
        out.lock.release()
        stop = threading.Event()

        def produce():
            while not stop.is_set():
                logger.debug("NEW", "new")
                time.sleep(0.001)

        producer = threading.Thread(target=produce, daemon=True)
        producer.start()
        flusher = threading.Thread(target=logger.flush, daemon=True)
        flusher.start()
        flusher.join(timeout=1)
        finished = not flusher.is_alive()
        stop.set()
        producer.join(timeout=2)
        assert finished

    def test_concurrent_prefix(self):
        out = BlockingWriter()
        logger = new_async_writer_logger(LogLevel.DEBUG, out)
        assert run_concurrent_prefix(logger, out) == WORKERS * ITERATIONS * 2

    def test_handle_panic_flushes_and_exits(self):
        out = io.StringIO()
        logger = AsyncLogger(LogLevel.DEBUG, out)
        with pytest.raises(SystemExit) as info:
            with logger.handle_panic("TAG"):
                raise ValueError("kaput")
        assert info.value.code == 2
        assert "ERROR - Panic: kaput" in out.getvalue()