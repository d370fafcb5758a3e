"""Parse Markdown into blocks.

This module converts CommonMark text into a list of Block objects
using the mistletoe library for parsing. Blocks carry plain text; a
paragraph whose whole content sits inside one emphasis, code span or link
keeps that as whole-block formatting.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any

from mistletoe import Document
from mistletoe.block_token import (
    BlockCode,
    CodeFence,
    Heading,
    List,
    ListItem,
    Paragraph,
    Quote,
    SetextHeading,
    Table,
    ThematicBreak,
)
from mistletoe.span_token import (
    Emphasis,
    Image,
    InlineCode,
    LineBreak,
    Link,
    RawText,
    Strikethrough,
    Strong,
)

from .blocks_models import (
    Block,
    BlockFormat,
    BlockType,
    CodeMetadata,
    MediaMetadata,
    TableMetadata,
    TextMetadata,
    TodoMetadata,
)
from .legacy_parser import IMAGE_URL_RE, VIDEO_URL_RE
from .ordering import renumber

logger = logging.getLogger(__name__)

_CHECKBOX_RE = re.compile(r"^\[([xX ])\]\s*(.*)$", re.DOTALL)


def parse_markdown(markdown: str) -> list[Block]:
    """Parse Markdown text into blocks.

    Args:
        markdown: The Markdown text to parse.

    Returns:
        Renumbered blocks; one empty paragraph for empty input.
    """
    doc = Document(markdown)
    blocks: list[Block] = []

    for token in doc.children:
        converted = _convert_token(token)
        if converted is None:
            continue
        if isinstance(converted, list):
            blocks.extend(converted)
        else:
            blocks.append(converted)

    if not blocks:
        blocks.append(Block.create(BlockType.PARAGRAPH))

    logger.debug("Parsed Markdown into %d blocks", len(blocks))
    return renumber(blocks)


def _convert_token(token: Any) -> Block | list[Block] | None:
    """Convert a mistletoe block token."""
    if isinstance(token, (Heading, SetextHeading)):
        return _convert_heading(token)
    elif isinstance(token, Paragraph):
        return _convert_paragraph(token)
    elif isinstance(token, (BlockCode, CodeFence)):
        return _convert_code(token)
    elif isinstance(token, List):
        return _convert_list(token)
    elif isinstance(token, Quote):
        return _convert_quote(token)
    elif isinstance(token, ThematicBreak):
        return Block.create(BlockType.DIVIDER)
    elif isinstance(token, Table):
        return _convert_table(token)
    else:
        # Unknown token type - try to extract text
        if hasattr(token, "children") and token.children:
            text = _extract_text(token)
            if text.strip():
                return Block.create(BlockType.PARAGRAPH, text.strip())
    return None


def _convert_heading(token: Heading | SetextHeading) -> Block:
    """Convert a heading token."""
    level = token.level
    if level == 1:
        block_type = BlockType.HEADING_1
    elif level == 2:
        block_type = BlockType.HEADING_2
    else:
        block_type = BlockType.HEADING_3
    return Block.create(block_type, _extract_text(token))


def _convert_paragraph(token: Paragraph) -> Block:
    """Convert a paragraph token."""
    children = list(token.children or [])

    # A paragraph holding only an image becomes an image block
    if len(children) == 1 and isinstance(children[0], Image):
        image = children[0]
        alt = _extract_text(image) or None
        return Block.create(BlockType.IMAGE, image.src, MediaMetadata(url=image.src, alt=alt))

    text = _extract_text(token)
    stripped = text.strip()
    if IMAGE_URL_RE.match(stripped):
        return Block.create(BlockType.IMAGE, stripped, MediaMetadata(url=stripped))
    if VIDEO_URL_RE.match(stripped):
        return Block.create(BlockType.VIDEO, stripped, MediaMetadata(url=stripped))

    checkbox = _CHECKBOX_RE.match(text)
    if checkbox:
        checked = checkbox.group(1).lower() == "x"
        return Block.create(BlockType.TODO_LIST, checkbox.group(2), TodoMetadata(checked=checked))

    return Block.create(
        BlockType.PARAGRAPH, text, TextMetadata(format=_whole_block_format(children))
    )


def _convert_code(token: BlockCode | CodeFence) -> Block:
    """Convert a code block token."""
    language = None
    if isinstance(token, CodeFence) and token.language:
        language = token.language

    if hasattr(token, "children") and token.children:
        content = _extract_text(token)
    else:
        content = ""

    return Block.create(
        BlockType.CODE_BLOCK, content.rstrip("\n"), CodeMetadata(language=language)
    )


def _convert_list(token: List) -> list[Block]:
    """Convert a list token into one block per item."""
    is_ordered = token.start is not None
    blocks = []

    for item in token.children:
        if not isinstance(item, ListItem):
            continue

        text = _extract_list_item_text(item)
        checkbox = _CHECKBOX_RE.match(text)
        if checkbox:
            checked = checkbox.group(1).lower() == "x"
            blocks.append(
                Block.create(BlockType.TODO_LIST, checkbox.group(2), TodoMetadata(checked=checked))
            )
        else:
            block_type = BlockType.NUMBERED_LIST if is_ordered else BlockType.BULLETED_LIST
            blocks.append(Block.create(block_type, text))

        # Nested lists are flattened after their parent item
        for child in item.children:
            if isinstance(child, List):
                blocks.extend(_convert_list(child))

    return blocks


def _extract_list_item_text(item: ListItem) -> str:
    parts = [_extract_text(child) for child in item.children if not isinstance(child, List)]
    return "\n".join(part for part in parts if part)


def _convert_quote(token: Quote) -> Block:
    """Convert a block quote; nested paragraphs are joined by newlines."""
    parts = [_extract_text(child) for child in token.children]
    return Block.create(BlockType.QUOTE, "\n".join(part for part in parts if part))


def _convert_table(token: Table) -> Block:
    """Convert a table; the header row becomes the first row of cells."""
    rows = []
    header = getattr(token, "header", None)
    if header is not None:
        rows.append([_extract_text(cell) for cell in header.children])
    for row in token.children:
        rows.append([_extract_text(cell) for cell in row.children])

    columns = max((len(row) for row in rows), default=1) or 1
    cells = [row + [""] * (columns - len(row)) for row in rows]
    return Block.create(
        BlockType.TABLE,
        "",
        TableMetadata(rows=max(len(cells), 1), columns=columns, cells=cells or None),
    )


def _whole_block_format(children: list[Any]) -> BlockFormat:
    """Formatting that wraps the entire paragraph, if any."""
    fmt = BlockFormat()
    while len(children) == 1:
        token = children[0]
        if isinstance(token, Strong):
            fmt = replace(fmt, bold=True)
        elif isinstance(token, Emphasis):
            fmt = replace(fmt, italic=True)
        elif isinstance(token, Strikethrough):
            fmt = replace(fmt, strikethrough=True)
        elif isinstance(token, InlineCode):
            return replace(fmt, code=True)
        elif isinstance(token, Link):
            fmt = replace(fmt, link=token.target)
        else:
            break
        children = list(token.children or [])
    return fmt


def _extract_text(token: Any) -> str:
    """Extract plain text from a token."""
    if isinstance(token, RawText):
        return token.content
    elif isinstance(token, LineBreak):
        return "\n"
    elif hasattr(token, "children") and token.children:
        return "".join(_extract_text(child) for child in token.children)
    return ""
