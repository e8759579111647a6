"""Tests for yamlsp.text."""
from __future__ import annotations

import pytest

from yamlsp.text import TextBuffer, indentation

TEXT = "kind: Pod\r\nspec:\n  replicas: 3"


class TestTextBuffer:
    def test_position_round_trip(self):
        buf = TextBuffer(TEXT)
        offset = TEXT.index('3')
        assert buf.position(offset) == (2, 12)
        assert buf.offset(2, 12) == offset

    def test_position_clamped(self):
        buf = TextBuffer(TEXT)
        assert buf.position(-5) == (0, 0)
        assert buf.position(10_000) == buf.position(len(TEXT))

    def test_line_content_strips_carriage_return(self):
        buf = TextBuffer(TEXT)
        assert buf.line_content(0) == 'kind: Pod'
        assert buf.line_content(7) == ''
        assert buf.line_count == 3

    def test_offset_clamped_to_line(self):
        buf = TextBuffer(TEXT)
        assert buf.offset(1, 99) == TEXT.index('spec:') + len('spec:')
        assert buf.offset(9, 0) == len(TEXT)
        assert buf.line_end_offset(0) == len('kind: Pod')


class TestIndentation:
    @pytest.mark.parametrize('line, column, expected', [
        ('    key: 1', 4, 4),
        ('    key: 1', 6, 4),
        ('  ', 2, 2),
        ('', 0, 0),
        ('\tkey', 3, 1),
        ('', 5, 0),
    ])
    def test_indentation(self, line, column, expected):
        assert indentation(line, column) == expected
