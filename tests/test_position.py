"""Tests for yamlsp.position — offset to node resolution."""
from __future__ import annotations

import pytest

from yamlsp.ast import MappingContainerNode, ScalarNode
from yamlsp.document import ParsedDocument, parse_yaml
from yamlsp.position import PositionIndex
from yamlsp.text import TextBuffer

K8S = "kind: Pod\nspec:\n  replicas: 3"
MULTI = "a: 1\n---\nb: 2\n"
COMMENTED = "# head\nkind: Pod  # inline\n# between\nspec:\n  x: 1\n# tail\n"


def _index(text: str) -> PositionIndex:
    doc = parse_yaml(text).documents[0]
    return PositionIndex(doc, TextBuffer(text))


class TestContainingNode:
    def test_innermost_scalar(self):
        text = "a:\n  b: 1"
        node, blank = _index(text).resolve(text.index('1'))
        assert isinstance(node, ScalarNode)
        assert node.value == 1
        assert blank is False

    def test_key_scalar(self):
        node, blank = _index(K8S).resolve(1)
        assert isinstance(node, ScalarNode)
        assert node.raw == 'kind'
        assert blank is False

    def test_between_tokens_gives_container(self):
        # The space after "replicas:" lies only inside the nested mapping.
        index = _index(K8S)
        node, _ = index.resolve(K8S.index(': 3') + 1)
        assert isinstance(node, MappingContainerNode)
        assert node.start == K8S.index('replicas')

    @pytest.mark.parametrize('text', [K8S, MULTI, COMMENTED])
    def test_every_offset_resolves(self, text):
        buffer = TextBuffer(text)
        for doc in parse_yaml(text).documents:
            index = PositionIndex(doc, buffer)
            for offset in range(len(text) + 1):
                node, blank = index.resolve(offset)
                assert node is not None
                assert blank or node.contains(offset), (offset, node)


class TestBlankLine:
    def test_indented_blank_line_selects_nested_mapping(self):
        text = "kind: Pod\nspec:\n  replicas: 3\n  \n"
        index = _index(text)
        node, blank = index.resolve(text.rindex('\n'))
        assert blank is True
        assert isinstance(node, MappingContainerNode)
        assert index.buffer.position(node.start) == (2, 2)

    def test_unindented_blank_line_selects_root(self):
        text = "kind: Pod\nspec:\n  replicas: 3\n\n"
        index = _index(text)
        node, blank = index.resolve(len(text) - 1)
        assert blank is True
        assert node is index.document.root

    def test_null_value_returned_directly(self):
        text = "kind:\n\nspec: 1"
        node, blank = _index(text).resolve(6)
        assert blank is True
        assert isinstance(node, ScalarNode)
        assert node.value is None
        assert node.start == text.index(':') + 1

    def test_empty_document(self):
        index = PositionIndex(ParsedDocument(), TextBuffer(''))
        assert index.resolve(0) == (None, True)


class TestNoContainingNode:
    def test_comment_line_falls_back_to_closest(self):
        text = "# c\nkind: Pod"
        node, blank = _index(text).resolve(1)
        assert blank is True
        assert isinstance(node, ScalarNode)
        assert node.raw == 'kind'

    def test_document_separator_line(self):
        text = "a: 1\n---\nb: 2\n"
        second = parse_yaml(text).documents[1]
        node, blank = PositionIndex(second, TextBuffer(text)).resolve(text.index('---'))
        assert blank is True
        assert node is not None
        assert not node.contains(text.index('---'))
