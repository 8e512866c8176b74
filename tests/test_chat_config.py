import pytest

from app.core.chat_config import parse_open_windows


def test_parse_default_windows():
    assert parse_open_windows("6-9,11-15,17-23") == [(6, 9), (11, 15), (17, 23)]


def test_parse_ignores_blanks_and_spaces():
    assert parse_open_windows(" 6-9 , ,17-24") == [(6, 9), (17, 24)]


def test_parse_wrapping_window():
    assert parse_open_windows("22-2") == [(22, 2)]


@pytest.mark.parametrize("raw", ["6", "6-9-12", "a-b", "5-5", "25-3", "-1-4"])
def test_parse_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_open_windows(raw)


@pytest.mark.parametrize("raw", ["6-9,8-10", "22-2,1-3", "0-24,5-6"])
def test_parse_rejects_overlap(raw):
    with pytest.raises(ValueError, match="Overlapping"):
        parse_open_windows(raw)
