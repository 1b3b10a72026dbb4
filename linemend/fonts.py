"""Font loading and change application for text blocks."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from .errors import ApplyFailure, ErrorCategory
from .structures import ChangeSet, TextBlock

logger = logging.getLogger(__name__)

FontLoader = Callable[[str], Awaitable[None]]


async def resolve_font(name: str) -> None:
    """Default loader: fonts embedded by reference need no fetching."""

    await asyncio.sleep(0)


class FontManager:
    """Validates blocks and applies change sets once their fonts are ready."""

    def __init__(self, loader: Optional[FontLoader] = None) -> None:
        self.loader = loader or resolve_font
        self.loaded_fonts: Set[str] = set()

    def validate(
        self,
        blocks: Iterable[TextBlock],
    ) -> Tuple[List[TextBlock], List[Tuple[TextBlock, ErrorCategory]]]:
        """Split blocks into processable ones and (block, reason) rejections."""

        processable: List[TextBlock] = []
        rejected: List[Tuple[TextBlock, ErrorCategory]] = []
        for block in blocks:
            if block.has_missing_font:
                rejected.append((block, ErrorCategory.MISSING_FONT))
            elif block.locked:
                rejected.append((block, ErrorCategory.LOCKED_BLOCK))
            elif not block.visible:
                rejected.append((block, ErrorCategory.HIDDEN_BLOCK))
            else:
                processable.append(block)
        return processable, rejected

    async def load_block_fonts(self, block: TextBlock) -> None:
        if block.has_missing_font:
            raise ApplyFailure(f"Cannot load missing font for block: {block.display_name}")

        for name in block.font_names:
            if name in self.loaded_fonts:
                continue
            try:
                await self.loader(name)
            except Exception as exc:
                raise ApplyFailure(f"Failed to load font {name}: {exc}") from exc
            self.loaded_fonts.add(name)
            logger.debug("Loaded font %s", name)

    async def apply(self, block: TextBlock, changes: ChangeSet) -> None:
        """Load fonts, then set the resize mode before the content."""

        if block.has_missing_font:
            raise ApplyFailure(
                f"Cannot process block with missing font: {block.display_name}"
            )
        if block.locked:
            raise ApplyFailure(f"Cannot process locked block: {block.display_name}")
        if block.handle is None:
            raise ApplyFailure(f"Block {block.display_name} cannot be modified.")

        await self.load_block_fonts(block)

        try:
            # Resize mode goes first so the new content is never re-wrapped.
            if changes.new_resize_mode is not None:
                block.handle.set_resize_mode(changes.new_resize_mode)
            if changes.new_text is not None:
                block.handle.set_content(changes.new_text)
        except Exception as exc:
            raise ApplyFailure(
                f"Failed to apply changes to block {block.display_name}: {exc}"
            ) from exc

    def clear_cache(self) -> None:
        self.loaded_fonts.clear()
