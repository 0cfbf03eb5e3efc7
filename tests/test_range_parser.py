import pytest

from filedelivery.server.exceptions import ErrorKind, RangeNotSatisfiable
from filedelivery.utils.range_parser import ByteRange, parse_range


def test_no_header_means_full_content():
    assert parse_range(None, 1000) is None
    assert parse_range("", 1000) is None


@pytest.mark.parametrize(
    "start, end, total",
    [(0, 0, 1), (0, 999, 1000), (10, 19, 1000), (999, 999, 1000), (500, 700, 701)],
)
def test_valid_range_length(start, end, total):
    byte_range = parse_range(f"bytes={start}-{end}", total)

    assert byte_range == ByteRange(start, end, total)
    assert byte_range.length == end - start + 1


def test_open_ended_range():
    byte_range = parse_range("bytes=500-", 1000)

    assert (byte_range.start, byte_range.end) == (500, 999)
    assert byte_range.content_range == "bytes 500-999/1000"
    assert byte_range.length == 500


def test_omitted_start_defaults_to_zero():
    byte_range = parse_range("bytes=-99", 1000)

    assert (byte_range.start, byte_range.end) == (0, 99)


def test_both_bounds_omitted_is_whole_file():
    byte_range = parse_range("bytes=-", 1000)

    assert (byte_range.start, byte_range.end) == (0, 999)


def test_surrounding_whitespace_is_ignored():
    assert parse_range("  bytes=1-2 ", 10) == ByteRange(1, 2, 10)


@pytest.mark.parametrize(
    "header",
    ["bytes=1200-1300", "bytes=5-4", "bytes=0-1000", "bytes=1000-"],
)
def test_unsatisfiable(header):
    with pytest.raises(RangeNotSatisfiable) as exc_info:
        parse_range(header, 1000)

    assert exc_info.value.total_size == 1000
    assert exc_info.value.status == 416
    assert exc_info.value.kind is ErrorKind.UNSATISFIABLE_RANGE


def test_any_range_on_empty_file_is_unsatisfiable():
    with pytest.raises(RangeNotSatisfiable):
        parse_range("bytes=0-", 0)


@pytest.mark.parametrize(
    "header",
    ["bytes=0-1,4-5", "items=0-5", "bytes=a-b", "bytes 0-5", "garbage"],
)
def test_unsupported_forms_degrade_to_full_content(header):
    assert parse_range(header, 1000) is None


def test_byte_range_rejects_invalid_bounds():
    with pytest.raises(ValueError):
        ByteRange(5, 4, 10)

    with pytest.raises(ValueError):
        ByteRange(0, 10, 10)


def test_non_ascii_digits_are_not_a_range():
    assert parse_range("bytes=٥-٩", 1000) is None


def test_error_message_override():
    error = RangeNotSatisfiable(1000, "custom")

    assert error.message == "custom"
    assert str(error) == "custom"
    assert RangeNotSatisfiable(1000).message == "416 Range Not Satisfiable"
