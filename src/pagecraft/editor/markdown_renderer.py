"""Render blocks to the flat legacy text format.

The output is Markdown-flavored plain text that ``parse_legacy_text`` reads
back into the same block types. Used for export and for documents that
still need a readable text copy.
"""

from __future__ import annotations

from collections.abc import Sequence

from .blocks_models import Block, BlockType, CalloutMetadata, CodeMetadata, TableMetadata, TodoMetadata

_HEADING_PREFIX = {
    BlockType.HEADING_1: "#",
    BlockType.HEADING_2: "##",
    BlockType.HEADING_3: "###",
}


def render_legacy_text(blocks: Sequence[Block]) -> str:
    """Render a block list to legacy text.

    Args:
        blocks: Blocks in display order. Toggle-list children follow their
            parent.

    Returns:
        Text with one structural line per block. Consecutive plain-text
        blocks are separated by a blank line so they stay separate
        paragraphs when parsed again.
    """
    lines: list[str] = []
    previous_plain = False

    for block in _flatten(blocks):
        plain = _is_plain(block)
        if plain and block.content == "":
            # A blank line on its own opens an empty paragraph
            lines.append("")
        else:
            if plain and previous_plain:
                lines.append("")
            lines.append(_render_block(block))
        previous_plain = plain

    return "\n".join(lines)


def _flatten(blocks: Sequence[Block]) -> list[Block]:
    result = []
    for block in blocks:
        result.append(block)
        if block.children:
            result.extend(_flatten(block.children))
    return result


def _is_plain(block: Block) -> bool:
    """Blocks written as bare text lines read back as paragraphs."""
    return block.type not in _STRUCTURAL_TYPES


def _render_block(block: Block) -> str:
    """Render a single block."""
    block_type = block.type

    if block_type in _HEADING_PREFIX:
        return f"{_HEADING_PREFIX[block_type]} {block.content}"
    elif block_type in (BlockType.BULLETED_LIST, BlockType.TOGGLE_LIST):
        return f"- {block.content}"
    elif block_type == BlockType.NUMBERED_LIST:
        return f"{block.list_index or 1}. {block.content}"
    elif block_type == BlockType.TODO_LIST:
        checked = isinstance(block.metadata, TodoMetadata) and block.metadata.checked
        return f"- [{'x' if checked else ' '}] {block.content}"
    elif block_type == BlockType.QUOTE:
        return f"> {block.content}"
    elif block_type == BlockType.CALLOUT:
        icon = block.metadata.icon if isinstance(block.metadata, CalloutMetadata) else ""
        return f"> {icon} {block.content}".rstrip()
    elif block_type == BlockType.CODE_BLOCK:
        return _render_code(block)
    elif block_type == BlockType.DIVIDER:
        return "---"
    elif block_type in (BlockType.IMAGE, BlockType.VIDEO):
        return block.media_url
    elif block_type == BlockType.TABLE:
        return _render_table(block)
    else:
        return block.content


def _render_code(block: Block) -> str:
    language = ""
    if isinstance(block.metadata, CodeMetadata) and block.metadata.language:
        language = block.metadata.language
    return f"```{language}\n{block.content}\n```"


def _render_table(block: Block) -> str:
    """Render table cells as pipe-separated lines."""
    metadata = block.metadata
    if not isinstance(metadata, TableMetadata) or not metadata.cells:
        return block.content
    return "\n".join(" | ".join(row) for row in metadata.cells)


_STRUCTURAL_TYPES = frozenset({
    *_HEADING_PREFIX,
    BlockType.BULLETED_LIST,
    BlockType.TOGGLE_LIST,
    BlockType.NUMBERED_LIST,
    BlockType.TODO_LIST,
    BlockType.QUOTE,
    BlockType.CALLOUT,
    BlockType.CODE_BLOCK,
    BlockType.DIVIDER,
    BlockType.IMAGE,
    BlockType.VIDEO,
})
