"""Document extraction and mutation for PowerPoint decks."""

from __future__ import annotations

import copy
import difflib
import logging
import pathlib
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import LinemendError, UnsupportedFileTypeError
from .structures import HARD_BREAK, ResizeMode, TextBlock

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE_PT = 18.0
THEME_FONT = "(theme)"
LINE_BREAK = "\v"
# Marks characters of runs that carry no rPr of their own.
PLAIN_RUN = object()


def _import_pptx():
    try:
        from pptx import Presentation  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise LinemendError(
            "python-pptx is required to process .pptx files. "
            "Install it with `pip install python-pptx`."
        ) from exc
    return Presentation


def _qn(tag: str) -> str:
    from pptx.oxml.ns import qn  # type: ignore

    return qn(tag)


class BlockHandle(ABC):
    """Mutation interface for the host element behind a TextBlock."""

    @abstractmethod
    def set_resize_mode(self, mode: ResizeMode) -> None:
        """Change how the element sizes itself."""

    @abstractmethod
    def set_content(self, text: str) -> None:
        """Replace the element's characters."""


class _StyledChar:
    __slots__ = ("char", "rpr", "paragraph")

    def __init__(self, char: str, rpr, paragraph: int) -> None:
        self.char = char
        self.rpr = rpr
        self.paragraph = paragraph


def _styled_chars(text_frame) -> List[_StyledChar]:
    """Flatten a text frame into characters tagged with their run properties."""

    run_tags = {_qn("a:r"), _qn("a:fld")}
    br_tag = _qn("a:br")
    chars: List[_StyledChar] = []
    for p_idx, paragraph in enumerate(text_frame.paragraphs):
        if p_idx:
            chars.append(_StyledChar(HARD_BREAK, None, p_idx))
        for child in paragraph._p:
            if child.tag in run_tags:
                t = child.find(_qn("a:t"))
                rpr = child.find(_qn("a:rPr"))
                if rpr is None:
                    rpr = PLAIN_RUN
                for char in (t.text or "") if t is not None else "":
                    chars.append(_StyledChar(char, rpr, p_idx))
            elif child.tag == br_tag:
                chars.append(_StyledChar(LINE_BREAK, child.find(_qn("a:rPr")), p_idx))
    return chars


def _align_styles(
    old: Sequence[_StyledChar],
    new_text: str,
) -> List[Optional[_StyledChar]]:
    """Map each character of the new text to the old character it came from."""

    old_text = "".join(item.char for item in old)
    mapping: List[Optional[_StyledChar]] = [None] * len(new_text)
    matcher = difflib.SequenceMatcher(None, old_text, new_text, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "delete":
            continue
        for j in range(j1, j2):
            if tag == "equal":
                source = i1 + (j - j1)
            elif tag == "replace":
                source = i1 + min(j - j1, i2 - i1 - 1)
            else:
                source = i1 - 1
            if 0 <= source < len(old):
                mapping[j] = old[source]
    return mapping


class PptxBlockHandle(BlockHandle):
    """Rewrites a shape's text frame while keeping run formatting."""

    def __init__(self, shape) -> None:
        self.shape = shape

    @property
    def text_frame(self):
        return self.shape.text_frame

    def set_resize_mode(self, mode: ResizeMode) -> None:
        from pptx.enum.text import MSO_AUTO_SIZE  # type: ignore

        text_frame = self.text_frame
        if mode is ResizeMode.AUTO_WIDTH_AND_HEIGHT:
            text_frame.word_wrap = False
            text_frame.auto_size = MSO_AUTO_SIZE.SHAPE_TO_FIT_TEXT
        elif mode is ResizeMode.AUTO_HEIGHT:
            text_frame.word_wrap = True
            text_frame.auto_size = MSO_AUTO_SIZE.SHAPE_TO_FIT_TEXT
        else:
            text_frame.word_wrap = True
            text_frame.auto_size = MSO_AUTO_SIZE.NONE

    def set_content(self, text: str) -> None:
        text_frame = self.text_frame
        old = _styled_chars(text_frame)
        paragraph_props = [
            copy.deepcopy(p._p.find(_qn("a:pPr"))) for p in text_frame.paragraphs
        ]
        sources = _align_styles(old, text)
        run_props = _inherit_run_props(sources)

        text_frame.clear()
        start = 0
        for p_idx, paragraph_text in enumerate(text.split(HARD_BREAK)):
            if p_idx == 0:
                paragraph = text_frame.paragraphs[0]
                origin = 0
            else:
                paragraph = text_frame.add_paragraph()
                # The break opening this paragraph tells us which one it came from.
                opener = sources[start - 1]
                origin = opener.paragraph if opener is not None else 0
            if origin < len(paragraph_props):
                _replace_child(paragraph._p, "a:pPr", paragraph_props[origin])

            end = start + len(paragraph_text)
            for chunk, rpr in _group_runs(paragraph_text, run_props[start:end]):
                self._write_chunk(paragraph, chunk, rpr)
            start = end + 1
        logger.debug("Rewrote text of shape %s", self.shape.name)

    @staticmethod
    def _write_chunk(paragraph, chunk: str, rpr) -> None:
        for idx, part in enumerate(chunk.split(LINE_BREAK)):
            if idx:
                paragraph.add_line_break()
            if not part:
                continue
            run = paragraph.add_run()
            run.text = part
            if rpr is not None and rpr is not PLAIN_RUN:
                _replace_child(run._r, "a:rPr", rpr)


def _inherit_run_props(sources: Sequence[Optional[_StyledChar]]) -> list:
    """Give unstyled characters (inserted spaces, former breaks) a neighbour's style."""

    props = [source.rpr if source is not None else None for source in sources]
    last = None
    for idx, rpr in enumerate(props):
        if rpr is None:
            props[idx] = last
        else:
            last = rpr
    first = next((rpr for rpr in props if rpr is not None), None)
    return [rpr if rpr is not None else first for rpr in props]


def _group_runs(text: str, run_props: Sequence) -> Iterator[Tuple[str, object]]:
    """Yield consecutive characters that share run properties."""

    chunk = ""
    current = None
    for char, rpr in zip(text, run_props):
        if chunk and rpr is not current:
            yield chunk, current
            chunk = ""
        current = rpr
        chunk += char
    if chunk:
        yield chunk, current


def _replace_child(parent, tag: str, replacement) -> None:
    existing = parent.find(_qn(tag))
    if existing is not None:
        parent.remove(existing)
    if replacement is not None:
        parent.insert(0, copy.deepcopy(replacement))


class BaseDocumentHandler(ABC):
    """Common base class for document handlers."""

    def __init__(self, source_path: pathlib.Path):
        self.source_path = source_path
        self.blocks: List[TextBlock] = []

    @abstractmethod
    def extract_text_blocks(self) -> List[TextBlock]:
        """Snapshot every text element of the document."""

    @abstractmethod
    def save(self, destination: pathlib.Path) -> None:
        """Persist the cleaned document."""

    def register_blocks(self, blocks: Iterable[TextBlock]) -> List[TextBlock]:
        """Store and return the provided blocks."""

        self.blocks = list(blocks)
        return self.blocks

    def find_blocks(self, block_ids: Sequence[str]) -> List[TextBlock]:
        """Return fresh snapshots of the requested blocks, in request order."""

        by_id = {block.block_id: block for block in self.extract_text_blocks()}
        return [by_id[block_id] for block_id in block_ids if block_id in by_id]


class PptxDocumentHandler(BaseDocumentHandler):
    """Extracts text blocks from PowerPoint presentations."""

    def __init__(
        self,
        source_path: pathlib.Path,
        *,
        available_fonts: Iterable[str] = (),
        presentation=None,
    ):
        super().__init__(source_path)
        if presentation is None:
            Presentation = _import_pptx()
            presentation = Presentation(str(source_path))
        self.presentation = presentation
        self.available_fonts = {name.lower() for name in available_fonts if name}

    def extract_text_blocks(self) -> List[TextBlock]:
        blocks: List[TextBlock] = []
        for slide_idx, slide in enumerate(self.presentation.slides):
            for shape in self._walk_shapes(slide.shapes):
                if not getattr(shape, "has_text_frame", False):
                    continue
                blocks.append(self._build_block(slide_idx, shape))
        logger.debug("Extracted %d text blocks from %s", len(blocks), self.source_path)
        return self.register_blocks(blocks)

    def save(self, destination: pathlib.Path) -> None:
        self.presentation.save(str(destination))

    # --- Internal helpers -------------------------------------------------

    def _walk_shapes(self, shapes) -> Iterator:
        from pptx.shapes.group import GroupShape  # type: ignore

        for shape in shapes:
            if isinstance(shape, GroupShape):
                yield from self._walk_shapes(shape.shapes)
            else:
                yield shape

    def _build_block(self, slide_idx: int, shape) -> TextBlock:
        text_frame = shape.text_frame
        font_names = _font_names(text_frame)
        return TextBlock(
            block_id=f"slide{slide_idx + 1}/shape{shape.shape_id}",
            name=shape.name,
            location=f"Slide {slide_idx + 1}, shape '{shape.name}'",
            content=text_frame.text,
            container_width=_container_width(shape),
            font_size=_font_size(text_frame),
            resize_mode=_resize_mode(text_frame),
            locked=_is_locked(shape),
            visible=not _is_hidden(shape),
            has_missing_font=self._has_missing_font(font_names),
            paragraph_spacing=_paragraph_spacing(text_frame),
            font_names=font_names,
            handle=PptxBlockHandle(shape),
        )

    def _has_missing_font(self, font_names: Sequence[str]) -> bool:
        if not self.available_fonts:
            return False
        return any(
            name != THEME_FONT and name.lower() not in self.available_fonts
            for name in font_names
        )


def _container_width(shape) -> float:
    if shape.width is None:
        return 0.0
    text_frame = shape.text_frame
    insets = text_frame.margin_left + text_frame.margin_right
    return max(0.0, (shape.width - insets) / 12700)


def _font_size(text_frame) -> float:
    for paragraph in text_frame.paragraphs:
        for run in paragraph.runs:
            if run.font.size is not None:
                return run.font.size.pt
        if paragraph.font.size is not None:
            return paragraph.font.size.pt
    return DEFAULT_FONT_SIZE_PT


def _font_names(text_frame) -> Tuple[str, ...]:
    names: List[str] = []
    for paragraph in text_frame.paragraphs:
        for run in paragraph.runs:
            rpr = run._r.find(_qn("a:rPr"))
            typefaces = []
            if rpr is not None:
                for tag in ("a:latin", "a:ea"):
                    node = rpr.find(_qn(tag))
                    if node is not None and node.get("typeface"):
                        typefaces.append(node.get("typeface"))
            if not typefaces:
                typefaces.append(THEME_FONT)
            for typeface in typefaces:
                name = THEME_FONT if typeface.startswith("+") else typeface
                if name not in names:
                    names.append(name)
    return tuple(names)


def _resize_mode(text_frame) -> ResizeMode:
    from pptx.enum.text import MSO_AUTO_SIZE  # type: ignore

    if text_frame.word_wrap is False:
        return ResizeMode.AUTO_WIDTH_AND_HEIGHT
    if text_frame.auto_size == MSO_AUTO_SIZE.SHAPE_TO_FIT_TEXT:
        return ResizeMode.AUTO_HEIGHT
    return ResizeMode.FIXED


def _is_locked(shape) -> bool:
    for locks in shape._element.iter(_qn("a:spLocks")):
        if locks.get("noTextEdit") in ("1", "true"):
            return True
    return False


def _is_hidden(shape) -> bool:
    c_nv_pr = next(shape._element.iter(_qn("p:cNvPr")), None)
    return c_nv_pr is not None and c_nv_pr.get("hidden") in ("1", "true")


def _paragraph_spacing(text_frame) -> float:
    paragraphs = text_frame.paragraphs
    if not paragraphs or paragraphs[0].space_after is None:
        return 0.0
    return paragraphs[0].space_after.pt


def detect_handler(
    path: pathlib.Path,
    *,
    available_fonts: Iterable[str] = (),
) -> Tuple[str, BaseDocumentHandler]:
    """Select an appropriate handler for the provided file."""

    suffix = path.suffix.lower()
    if suffix == ".pptx":
        handler: BaseDocumentHandler = PptxDocumentHandler(
            path, available_fonts=available_fonts
        )
        return "pptx", handler
    raise UnsupportedFileTypeError(
        "This file type isn’t supported. Please use a .pptx file."
    )
