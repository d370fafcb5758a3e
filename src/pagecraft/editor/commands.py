"""Slash-command catalog: what the block command palette can offer."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .blocks_models import BlockType

ALL_CATEGORIES = "All"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a command transformation."""

    new_content: str
    cursor_position: int


def keep_content(content: str) -> CommandResult:
    """Default transformation: keep the text and put the cursor at its end."""
    return CommandResult(new_content=content, cursor_position=len(content))


@dataclass(frozen=True)
class CommandItem:
    """A single entry in the slash-command palette."""

    id: str
    title: str
    description: str
    category: str
    target_type: BlockType
    shortcut: str | None = None
    transform: Callable[[str], CommandResult] = keep_content

    def matches(self, query: str) -> bool:
        """Case-insensitive match against title, description or category."""
        needle = query.lower()
        return (
            needle in self.title.lower()
            or needle in self.description.lower()
            or needle in self.category.lower()
        )


def get_command_catalog() -> list[CommandItem]:
    """Get the ordered command catalog shown by the palette."""
    return [
        # Basic Blocks
        CommandItem(
            id="paragraph",
            title="Text",
            description="Just start writing with plain text",
            category="Basic Blocks",
            target_type=BlockType.PARAGRAPH,
            shortcut="Just start typing",
        ),
        CommandItem(
            id="heading-1",
            title="Heading 1",
            description="Large section heading",
            category="Basic Blocks",
            target_type=BlockType.HEADING_1,
            shortcut="#",
        ),
        CommandItem(
            id="heading-2",
            title="Heading 2",
            description="Medium section heading",
            category="Basic Blocks",
            target_type=BlockType.HEADING_2,
            shortcut="##",
        ),
        CommandItem(
            id="heading-3",
            title="Heading 3",
            description="Small section heading",
            category="Basic Blocks",
            target_type=BlockType.HEADING_3,
            shortcut="###",
        ),
        # Lists
        CommandItem(
            id="bulleted-list",
            title="Bulleted list",
            description="Simple bulleted list",
            category="Lists",
            target_type=BlockType.BULLETED_LIST,
            shortcut="-",
        ),
        CommandItem(
            id="numbered-list",
            title="Numbered list",
            description="Ordered numbered list",
            category="Lists",
            target_type=BlockType.NUMBERED_LIST,
            shortcut="1.",
        ),
        CommandItem(
            id="toggle-list",
            title="Toggle list",
            description="Collapsible list with toggle",
            category="Lists",
            target_type=BlockType.TOGGLE_LIST,
            shortcut=">",
        ),
        CommandItem(
            id="todo-list",
            title="To-do list",
            description="Checkbox task list",
            category="Lists",
            target_type=BlockType.TODO_LIST,
            shortcut="[ ]",
        ),
        # Media & Content
        CommandItem(
            id="quote",
            title="Quote",
            description="Blockquote for citations",
            category="Media & Content",
            target_type=BlockType.QUOTE,
            shortcut=">",
        ),
        CommandItem(
            id="code-block",
            title="Code block",
            description="Code snippet with syntax highlighting",
            category="Media & Content",
            target_type=BlockType.CODE_BLOCK,
            shortcut="```",
        ),
        CommandItem(
            id="divider",
            title="Divider",
            description="Horizontal line separator",
            category="Media & Content",
            target_type=BlockType.DIVIDER,
            shortcut="---",
        ),
        CommandItem(
            id="image",
            title="Image",
            description="Insert an image",
            category="Media & Content",
            target_type=BlockType.IMAGE,
            shortcut="!",
        ),
        CommandItem(
            id="video",
            title="Video",
            description="Insert a video",
            category="Media & Content",
            target_type=BlockType.VIDEO,
            shortcut="!",
        ),
        CommandItem(
            id="bookmark",
            title="Bookmark",
            description="Save a link with preview",
            category="Media & Content",
            target_type=BlockType.BOOKMARK,
            shortcut="!",
        ),
        # Advanced
        CommandItem(
            id="table",
            title="Table",
            description="Data table with rows and columns",
            category="Advanced",
            target_type=BlockType.TABLE,
            shortcut="/table",
        ),
        CommandItem(
            id="callout",
            title="Callout",
            description="Highlighted information box",
            category="Advanced",
            target_type=BlockType.CALLOUT,
            shortcut="/callout",
        ),
        CommandItem(
            id="columns",
            title="Columns",
            description="Multi-column layout",
            category="Advanced",
            target_type=BlockType.COLUMNS,
            shortcut="/columns",
        ),
        CommandItem(
            id="math",
            title="Math",
            description="Mathematical equations",
            category="Advanced",
            target_type=BlockType.MATH,
            shortcut="/math",
        ),
        # References
        CommandItem(
            id="mention",
            title="Mention",
            description="Mention a person or page",
            category="References",
            target_type=BlockType.MENTION,
            shortcut="@",
        ),
        CommandItem(
            id="page-reference",
            title="Page reference",
            description="Link to another page",
            category="References",
            target_type=BlockType.PAGE_REFERENCE,
            shortcut="/page",
        ),
        CommandItem(
            id="database-reference",
            title="Database",
            description="Reference a database",
            category="References",
            target_type=BlockType.DATABASE_REFERENCE,
            shortcut="/database",
        ),
    ]


def filter_commands(
    catalog: Sequence[CommandItem],
    query: str,
    category: str = ALL_CATEGORIES,
) -> list[CommandItem]:
    """Filter the catalog by a search query, preserving catalog order.

    Args:
        catalog: The full ordered catalog.
        query: Text typed after the slash; empty matches everything.
        category: Restrict to one palette category, or "All".
    """
    return [
        command
        for command in catalog
        if command.matches(query)
        and (category == ALL_CATEGORIES or command.category == category)
    ]


def list_categories(catalog: Sequence[CommandItem]) -> list[str]:
    """Get palette category tabs: "All" followed by catalog categories in order."""
    categories = [ALL_CATEGORIES]
    for command in catalog:
        if command.category not in categories:
            categories.append(command.category)
    return categories
