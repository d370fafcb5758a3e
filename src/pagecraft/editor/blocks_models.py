"""Data models for the block-based document editor.

This module defines the core data structures for Notion-style blocks:
the closed block type taxonomy, per-type metadata variants, whole-block
formatting flags and the Block record itself.

The persisted shape is a JSON block array using camelCase keys
(``orderIndex``, ``listIndex``, ``isBold``...). ``Block.from_dict`` repairs
malformed entries instead of rejecting them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, ClassVar
from uuid import uuid4

from ..config import TABLES

logger = logging.getLogger(__name__)


class BlockType(str, Enum):
    """Closed taxonomy of block types."""

    # Text blocks
    PARAGRAPH = "paragraph"
    HEADING_1 = "heading-1"
    HEADING_2 = "heading-2"
    HEADING_3 = "heading-3"

    # List blocks
    BULLETED_LIST = "bulleted-list"
    NUMBERED_LIST = "numbered-list"
    TOGGLE_LIST = "toggle-list"
    TODO_LIST = "todo-list"

    # Special blocks
    QUOTE = "quote"
    CODE_BLOCK = "code-block"
    DIVIDER = "divider"
    TABLE = "table"
    CALLOUT = "callout"
    COLUMNS = "columns"
    MATH = "math"

    # Media
    IMAGE = "image"
    VIDEO = "video"
    BOOKMARK = "bookmark"

    # References
    MENTION = "mention"
    PAGE_REFERENCE = "page-reference"
    DATABASE_REFERENCE = "database-reference"

    @classmethod
    def parse(cls, value: BlockType | str) -> BlockType:
        """Resolve a stored type string, accepting legacy aliases.

        Raises:
            ValueError: If the value names no known block type.
        """
        if isinstance(value, BlockType):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid block type: {value!r}")
        normalized = value.strip().lower().replace("_", "-")
        normalized = _TYPE_ALIASES.get(normalized, normalized)
        return cls(normalized)


_TYPE_ALIASES = {
    "text": "paragraph",
    "im": "image",
    "todo": "todo-list",
    "to-do": "todo-list",
    "code": "code-block",
}

LIST_TYPES = frozenset({
    BlockType.BULLETED_LIST,
    BlockType.NUMBERED_LIST,
    BlockType.TOGGLE_LIST,
    BlockType.TODO_LIST,
})

MEDIA_TYPES = frozenset({
    BlockType.IMAGE,
    BlockType.VIDEO,
    BlockType.BOOKMARK,
})

# Only toggle lists own a subtree; the document block list is otherwise flat
NESTABLE_TYPES = frozenset({BlockType.TOGGLE_LIST})


def new_block_id() -> str:
    """Generate a new unique block ID."""
    return f"block-{uuid4().hex[:12]}"


# =============================================================================
# Whole-block formatting
# =============================================================================


# attribute name -> persisted metadata key
_FORMAT_KEYS: dict[str, str] = {
    "bold": "isBold",
    "italic": "isItalic",
    "underline": "isUnderlined",
    "strikethrough": "isStrikethrough",
    "code": "isCode",
    "link": "link",
    "text_align": "textAlign",
    "color": "color",
    "background_color": "backgroundColor",
}

FORMAT_FLAGS = frozenset({"bold", "italic", "underline", "strikethrough", "code"})
FORMAT_VALUES = frozenset({"link", "text_align", "color", "background_color"})


@dataclass(frozen=True)
class BlockFormat:
    """Formatting applied to a whole block.

    There are no ranged spans: a flag covers the block's entire content.
    """

    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    code: bool = False
    link: str | None = None
    text_align: str | None = None
    color: str | None = None
    background_color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to persisted keys, omitting unset values."""
        result: dict[str, Any] = {}
        for attr, key in _FORMAT_KEYS.items():
            value = getattr(self, attr)
            if value:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockFormat:
        """Create from persisted metadata keys."""
        kwargs: dict[str, Any] = {}
        for attr, key in _FORMAT_KEYS.items():
            if key not in data:
                continue
            value = data[key]
            if attr in FORMAT_FLAGS:
                kwargs[attr] = bool(value)
            elif value is not None:
                kwargs[attr] = str(value)
        return cls(**kwargs)


# =============================================================================
# Metadata variants (tagged by block type)
# =============================================================================


@dataclass(frozen=True)
class BlockMetadata:
    """Base for type-specific metadata.

    Every variant carries the whole-block format and an ``extra`` dict that
    preserves keys this version does not understand, so stored blocks
    round-trip losslessly.
    """

    format: BlockFormat = field(default_factory=BlockFormat)
    extra: dict[str, Any] = field(default_factory=dict)

    # attribute name -> persisted key, for the variant's own fields
    _KEYS: ClassVar[dict[str, str]] = {}

    def to_dict(self) -> dict[str, Any]:
        result = dict(self.extra)
        result.update(self.format.to_dict())
        for attr, key in self._KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockMetadata:
        kwargs: dict[str, Any] = {}
        defaults = {f.name: f for f in fields(cls)}
        for attr, key in cls._KEYS.items():
            if key in data and data[key] is not None:
                kwargs[attr] = cls._coerce(attr, data[key], defaults[attr])
        known = set(cls._KEYS.values()) | set(_FORMAT_KEYS.values())
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(format=BlockFormat.from_dict(data), extra=extra, **kwargs)

    @classmethod
    def _coerce(cls, attr: str, value: Any, field_info: Any) -> Any:
        """Coerce a stored value to the field's default type, if it has one."""
        default = field_info.default
        try:
            if isinstance(default, bool):
                return bool(value)
            if isinstance(default, int):
                return int(value)
        except (TypeError, ValueError):
            logger.debug("Dropping malformed metadata %s=%r", attr, value)
            return default
        return value


@dataclass(frozen=True)
class TextMetadata(BlockMetadata):
    """Metadata for blocks with no type-specific fields."""


@dataclass(frozen=True)
class CodeMetadata(BlockMetadata):
    language: str | None = None

    _KEYS: ClassVar[dict[str, str]] = {"language": "language"}


@dataclass(frozen=True)
class MediaMetadata(BlockMetadata):
    """Image, video and bookmark blocks.

    ``mode`` is ``upload`` for files held by the upload store and
    ``external`` for plain URLs.
    """

    url: str = ""
    mode: str = "external"
    alt: str | None = None
    file_path: str | None = None
    original_filename: str | None = None
    file_size: int | None = None
    mime_type: str | None = None

    _KEYS: ClassVar[dict[str, str]] = {
        "url": "url",
        "mode": "mode",
        "alt": "alt",
        "file_path": "filePath",
        "original_filename": "originalFilename",
        "file_size": "fileSize",
        "mime_type": "mimeType",
    }

    @classmethod
    def _coerce(cls, attr: str, value: Any, field_info: Any) -> Any:
        if attr == "file_size":
            try:
                return int(value)
            except (TypeError, ValueError):
                return None
        if attr == "mode" and value not in ("upload", "external"):
            return "external"
        return str(value)


@dataclass(frozen=True)
class TableMetadata(BlockMetadata):
    rows: int = TABLES.DEFAULT_ROWS
    columns: int = TABLES.DEFAULT_COLUMNS
    cells: list[list[str]] | None = None

    _KEYS: ClassVar[dict[str, str]] = {
        "rows": "rows",
        "columns": "columns",
        "cells": "cells",
    }

    @classmethod
    def _coerce(cls, attr: str, value: Any, field_info: Any) -> Any:
        if attr == "cells":
            if not isinstance(value, list):
                return None
            return [
                [str(cell) for cell in row] if isinstance(row, list) else []
                for row in value
            ]
        coerced = super()._coerce(attr, value, field_info)
        minimum = TABLES.MIN_ROWS if attr == "rows" else TABLES.MIN_COLUMNS
        return max(minimum, coerced)


@dataclass(frozen=True)
class ToggleMetadata(BlockMetadata):
    collapsed: bool = False

    _KEYS: ClassVar[dict[str, str]] = {"collapsed": "collapsed"}


@dataclass(frozen=True)
class TodoMetadata(BlockMetadata):
    checked: bool = False

    _KEYS: ClassVar[dict[str, str]] = {"checked": "checked"}


@dataclass(frozen=True)
class CalloutMetadata(BlockMetadata):
    icon: str = "\U0001f4a1"

    _KEYS: ClassVar[dict[str, str]] = {"icon": "icon"}


METADATA_TYPES: dict[BlockType, type[BlockMetadata]] = {
    BlockType.CODE_BLOCK: CodeMetadata,
    BlockType.IMAGE: MediaMetadata,
    BlockType.VIDEO: MediaMetadata,
    BlockType.BOOKMARK: MediaMetadata,
    BlockType.TABLE: TableMetadata,
    BlockType.TOGGLE_LIST: ToggleMetadata,
    BlockType.TODO_LIST: TodoMetadata,
    BlockType.CALLOUT: CalloutMetadata,
}


def metadata_class(block_type: BlockType) -> type[BlockMetadata]:
    """Get the metadata variant for a block type."""
    return METADATA_TYPES.get(block_type, TextMetadata)


def default_metadata(block_type: BlockType) -> BlockMetadata:
    """Get fresh default metadata for a block type."""
    return metadata_class(block_type)()


def metadata_from_dict(block_type: BlockType, data: Any) -> BlockMetadata:
    """Build the metadata variant for a type, defaulting anything missing."""
    if not isinstance(data, dict):
        return default_metadata(block_type)
    return metadata_class(block_type).from_dict(data)


def convert_metadata(metadata: BlockMetadata, new_type: BlockType) -> BlockMetadata:
    """Re-tag metadata for a new block type.

    Formatting flags and unknown keys carry over; type-specific fields reset
    to the new type's defaults, except a media URL moving between media types.
    """
    target = metadata_class(new_type)
    if isinstance(metadata, target):
        return metadata
    converted = target(format=metadata.format, extra=dict(metadata.extra))
    if isinstance(metadata, MediaMetadata) and isinstance(converted, MediaMetadata):
        converted = replace(converted, url=metadata.url, mode=metadata.mode, alt=metadata.alt)
    return converted


# =============================================================================
# Block
# =============================================================================


@dataclass
class Block:
    """A content block in the document editor.

    ``order_index`` and ``list_index`` are derived values: they are fully
    recomputed by ``ordering.renumber`` after every structural change and
    never patched in place.
    """

    id: str
    type: BlockType
    content: str = ""
    metadata: BlockMetadata | None = None
    order_index: int = 0
    # Only set while type is numbered-list
    list_index: int | None = None
    # Only used by toggle-list
    children: list[Block] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.type, BlockType):
            self.type = BlockType.parse(self.type)
        if self.metadata is None:
            self.metadata = default_metadata(self.type)
        elif not isinstance(self.metadata, metadata_class(self.type)):
            self.metadata = convert_metadata(self.metadata, self.type)

    @classmethod
    def create(
        cls,
        type: BlockType | str = BlockType.PARAGRAPH,
        content: str = "",
        metadata: BlockMetadata | None = None,
    ) -> Block:
        """Create a block with a freshly generated id."""
        return cls(id=new_block_id(), type=type, content=content, metadata=metadata)

    @property
    def format(self) -> BlockFormat:
        return self.metadata.format

    @property
    def media_url(self) -> str:
        """URL for media blocks; content doubles as URL until metadata is attached."""
        if isinstance(self.metadata, MediaMetadata) and self.metadata.url:
            return self.metadata.url
        return self.content

    def is_empty(self) -> bool:
        """Check if the block has no textual content."""
        return self.content == ""

    def is_nestable(self) -> bool:
        """Check if this block type supports children."""
        return self.type in NESTABLE_TYPES

    def has_children(self) -> bool:
        return len(self.children) > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "metadata": self.metadata.to_dict(),
            "orderIndex": self.order_index,
        }
        if self.list_index is not None:
            result["listIndex"] = self.list_index
        if self.children:
            result["children"] = [child.to_dict() for child in self.children]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Block:
        """Create from a stored entry, repairing anything malformed.

        Missing ids are generated, missing metadata is defaulted per type and
        unknown types degrade to paragraph.
        """
        try:
            block_type = BlockType.parse(data.get("type", BlockType.PARAGRAPH))
        except ValueError:
            logger.debug("Unknown block type %r, using paragraph", data.get("type"))
            block_type = BlockType.PARAGRAPH

        block_id = data.get("id")
        if not block_id or not isinstance(block_id, (str, int)):
            block_id = new_block_id()

        content = data.get("content")
        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = str(content)

        raw_metadata = data.get("metadata")
        if not isinstance(raw_metadata, dict):
            raw_metadata = {}
        # Older entries keep the todo flag on the block itself
        if block_type == BlockType.TODO_LIST and "checked" in data and "checked" not in raw_metadata:
            raw_metadata = {**raw_metadata, "checked": data["checked"]}

        raw_children = data.get("children")
        children = []
        if isinstance(raw_children, list):
            children = [cls.from_dict(c) for c in raw_children if isinstance(c, dict)]

        return cls(
            id=str(block_id),
            type=block_type,
            content=content,
            metadata=metadata_from_dict(block_type, raw_metadata),
            order_index=_as_int(data.get("orderIndex"), 0),
            list_index=_as_int(data.get("listIndex"), None),
            children=children,
        )


def _as_int(value: Any, default: int | None) -> int | None:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def new_document_blocks() -> list[Block]:
    """Blocks for a brand new document: one empty paragraph."""
    return [Block.create(BlockType.PARAGRAPH)]
