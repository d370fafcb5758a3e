"""Parse legacy flat-text document content into blocks.

Documents saved before the block editor existed only carry a flat text
column. This parser rebuilds an ordered block list from it, line by line,
keeping one open accumulator block. It runs once per load and only when no
structured representation is stored.

The parser never fails: anything it does not recognise becomes paragraph
text, and the result always holds at least one block.
"""

from __future__ import annotations

import logging
import re

from .blocks_models import (
    Block,
    BlockType,
    CodeMetadata,
    MediaMetadata,
    TodoMetadata,
)
from .ordering import renumber

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico")
VIDEO_EXTENSIONS = ("mp4", "webm", "ogg", "mov", "m4v")


def _media_url_pattern(extensions: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(
        r"^https?://[^\s/$.?#].[^\s]*\.(" + "|".join(extensions) + r")(\?[^\s]*)?$",
        re.IGNORECASE,
    )


IMAGE_URL_RE = _media_url_pattern(IMAGE_EXTENSIONS)
VIDEO_URL_RE = _media_url_pattern(VIDEO_EXTENSIONS)

_HEADING_PREFIXES = (
    ("### ", BlockType.HEADING_3),
    ("## ", BlockType.HEADING_2),
    ("# ", BlockType.HEADING_1),
)
_TODO_RE = re.compile(r"^- \[([ xX])\] ?(.*)$")
_NUMBERED_RE = re.compile(r"^\d+\. (.*)$")
_FENCE = "```"


def parse_legacy_text(text: str | None) -> list[Block]:
    """Parse flat legacy text into an ordered block list.

    Args:
        text: The stored flat text (may be empty or None).

    Returns:
        Renumbered blocks; never empty.
    """
    lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
    blocks: list[Block] = []
    current: Block | None = None

    def close() -> None:
        nonlocal current
        if current is not None:
            blocks.append(current)
            current = None

    index = 0
    while index < len(lines):
        line = lines[index]
        index += 1
        stripped = line.strip()

        if stripped.startswith(_FENCE):
            close()
            language = stripped[len(_FENCE):].strip() or None
            closing = _find_closing_fence(lines, index)
            body: list[str] = []
            if closing is None:
                # Unclosed fence: empty placeholder, later lines parse normally
                logger.debug("Unclosed code fence at line %d", index)
            else:
                body = lines[index:closing]
                index = closing + 1
            current = Block.create(
                BlockType.CODE_BLOCK,
                "\n".join(body),
                CodeMetadata(language=language),
            )
            continue

        structured = _match_structured_line(line, stripped)
        if structured is not None:
            close()
            current = structured
            continue

        if not stripped:
            close()
            current = Block.create(BlockType.PARAGRAPH)
            continue

        if current is not None and current.type == BlockType.PARAGRAPH:
            current.content = f"{current.content}\n{line}" if current.content else line
        else:
            close()
            current = Block.create(BlockType.PARAGRAPH, line)

    close()

    if not blocks:
        blocks.append(Block.create(BlockType.PARAGRAPH))

    logger.debug("Parsed legacy text into %d blocks", len(blocks))
    return renumber(blocks)


def _find_closing_fence(lines: list[str], start: int) -> int | None:
    for position in range(start, len(lines)):
        if lines[position].strip().startswith(_FENCE):
            return position
    return None


def _match_structured_line(line: str, stripped: str) -> Block | None:
    """Build the block a structural line opens, or None for plain text."""
    for prefix, block_type in _HEADING_PREFIXES:
        if line.startswith(prefix):
            return Block.create(block_type, line[len(prefix):])

    todo = _TODO_RE.match(line)
    if todo:
        checked = todo.group(1).lower() == "x"
        return Block.create(BlockType.TODO_LIST, todo.group(2), TodoMetadata(checked=checked))

    if line.startswith("- "):
        return Block.create(BlockType.BULLETED_LIST, line[2:])

    numbered = _NUMBERED_RE.match(line)
    if numbered:
        return Block.create(BlockType.NUMBERED_LIST, numbered.group(1))

    if line.startswith("> "):
        return Block.create(BlockType.QUOTE, line[2:])

    if stripped == "---":
        return Block.create(BlockType.DIVIDER)

    if IMAGE_URL_RE.match(stripped):
        return Block.create(BlockType.IMAGE, stripped, MediaMetadata(url=stripped))

    if VIDEO_URL_RE.match(stripped):
        return Block.create(BlockType.VIDEO, stripped, MediaMetadata(url=stripped))

    return None
