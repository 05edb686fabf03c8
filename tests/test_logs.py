import asyncio
from datetime import datetime, timedelta, timezone

from bctop.logs import EPOCH, LogBuffer, LogTailEngine

from conftest import FakeTarget


def test_append_at_tail_keeps_following():
    buffer = LogBuffer(lines=["a", "b"])
    buffer.append(["c", "d"])
    assert buffer.position == 0
    assert buffer.visible(2) == ["c", "d"]


def test_append_while_scrolled_keeps_view_still():
    buffer = LogBuffer(lines=["a", "b", "c"], position=2)
    before = buffer.visible(1)
    assert buffer.append(["d", "e"]) == 2
    assert buffer.position == 4
    assert buffer.visible(1) == before


def test_append_nothing():
    buffer = LogBuffer(lines=["a"], position=0)
    assert buffer.append([]) == 0
    assert buffer.lines == ["a"]


def test_scroll_saturates():
    buffer = LogBuffer(lines=["a", "b", "c"])
    for _ in range(5):
        buffer.scroll_up()
    assert buffer.position == 2
    for _ in range(5):
        buffer.scroll_down()
    assert buffer.position == 0


def test_scroll_up_on_empty_buffer():
    buffer = LogBuffer()
    buffer.scroll_up()
    assert buffer.position == 0


def test_search_finds_older_match_case_insensitively():
    buffer = LogBuffer(lines=["ok", "warn", "ERRor", "ok"])
    buffer.start_search()
    for char in "err":
        buffer.type_search(char)

    assert buffer.find_next()
    assert buffer.position == 1
    assert buffer.visible(1) == ["ERRor"]

    assert not buffer.find_next()
    assert buffer.position == 1


def test_search_moves_to_next_older_match():
    buffer = LogBuffer(lines=["err 1", "ok", "err 2", "ok"])
    buffer.search = "err"
    assert buffer.find_next()
    assert buffer.position == 1
    assert buffer.find_next()
    assert buffer.position == 3


def test_find_next_without_needle_or_lines():
    assert not LogBuffer().find_next()
    buffer = LogBuffer(lines=["a"])
    buffer.start_search()
    assert not buffer.find_next()


def test_search_editing():
    buffer = LogBuffer()
    assert not buffer.is_searching
    buffer.start_search()
    assert buffer.is_searching and buffer.search == ""
    buffer.type_search("a")
    buffer.type_search("b")
    buffer.erase_search()
    assert buffer.search == "a"
    buffer.erase_search()
    buffer.erase_search()
    assert buffer.search == ""
    buffer.clear_search()
    assert not buffer.is_searching


def test_watermark_only_moves_forward():
    buffer = LogBuffer()
    later = datetime(2024, 1, 2, tzinfo=timezone.utc)
    buffer.advance_watermark(later)
    buffer.advance_watermark(later - timedelta(hours=1))
    assert buffer.watermark == later


def test_append_stream_joins_partial_lines():
    buffer = LogBuffer()
    assert buffer.append_stream("$ ") == 1
    buffer.echo("ls\n")
    assert buffer.append_stream("file1\r\nfi") == 2
    assert buffer.append_stream("le2\r\n$ ") == 1
    assert buffer.lines == ["$ ls", "file1", "file2", "$ "]


def test_echo_on_empty_buffer():
    buffer = LogBuffer()
    buffer.echo("pwd\n")
    assert buffer.lines == ["pwd"]


def test_visible_window():
    buffer = LogBuffer(lines=[str(i) for i in range(10)], position=3)
    assert buffer.visible(4) == ["3", "4", "5", "6"]
    assert buffer.visible(0) == []
    assert LogBuffer().visible(5) == []


def test_clear_resets_everything():
    buffer = LogBuffer(lines=["a"], position=1, search="x")
    buffer.advance_watermark(datetime(2024, 1, 1, tzinfo=timezone.utc))
    buffer.clear()
    assert buffer.lines == []
    assert buffer.position == 0
    assert buffer.search is None
    assert buffer.watermark == EPOCH


def test_tail_once_fetches_since_watermark(backend):
    target = FakeTarget()
    target.watermark = EPOCH
    backend.container_logs.return_value = ["one", "two"]
    engine = LogTailEngine(backend, target, "abc")

    assert asyncio.run(engine.tail_once()) == 2

    backend.container_logs.assert_called_once_with("abc", EPOCH)
    assert target.logs == ["one", "two"]
    assert target.watermark > EPOCH


def test_tail_once_failure_leaves_watermark(backend):
    target = FakeTarget()
    target.watermark = EPOCH
    backend.container_logs.return_value = None
    engine = LogTailEngine(backend, target, "abc")

    assert asyncio.run(engine.tail_once()) == 0
    assert target.watermark == EPOCH
    assert target.calls == []
