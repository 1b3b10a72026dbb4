from __future__ import annotations

import pathlib
from typing import List

import pytest

from linemend.documents import BaseDocumentHandler, BlockHandle
from linemend.structures import ResizeMode, TextBlock


class MemoryBlockHandle(BlockHandle):
    """In-memory stand-in for a host text element."""

    def __init__(self, block: TextBlock, *, fail_on_content: bool = False) -> None:
        self.block = block
        self.fail_on_content = fail_on_content
        self.calls: List[str] = []

    def set_resize_mode(self, mode: ResizeMode) -> None:
        self.calls.append("resize")
        self.block.resize_mode = mode

    def set_content(self, text: str) -> None:
        self.calls.append("content")
        if self.fail_on_content:
            raise RuntimeError("host refused the edit")
        self.block.content = text


class MemoryDocumentHandler(BaseDocumentHandler):
    def __init__(self, blocks: List[TextBlock]) -> None:
        super().__init__(pathlib.Path("memory.pptx"))
        self._source = blocks
        self.saved_to: List[pathlib.Path] = []

    def extract_text_blocks(self) -> List[TextBlock]:
        return self.register_blocks(self._source)

    def save(self, destination: pathlib.Path) -> None:
        self.saved_to.append(destination)


def build_block(
    content: str,
    *,
    block_id: str = "block",
    container_width: float = 400.0,
    font_size: float = 16.0,
    with_handle: bool = True,
    **kwargs,
) -> TextBlock:
    block = TextBlock(
        block_id=block_id,
        content=content,
        container_width=container_width,
        font_size=font_size,
        **kwargs,
    )
    if with_handle:
        block.handle = MemoryBlockHandle(block)
    return block


@pytest.fixture
def make_block():
    return build_block
