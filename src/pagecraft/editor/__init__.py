"""Block editor core.

Key components:
- blocks_models: Block, BlockType and the per-type metadata variants
- legacy_parser: flat legacy text -> Blocks
- ordering: order and list-index maintenance
- commands / slash: command catalog and the slash palette state machine
- actions: editing actions and the reducer that applies them
- session / autosave: live editing state and debounced persistence
- markdown_parser / markdown_renderer: Markdown import and text export
"""

from .actions import reduce
from .blocks_models import Block, BlockType
from .commands import CommandItem, get_command_catalog
from .legacy_parser import parse_legacy_text
from .markdown_parser import parse_markdown
from .markdown_renderer import render_legacy_text
from .ordering import renumber
from .slash import SlashCommandEngine

__all__ = [
    "Block",
    "BlockType",
    "CommandItem",
    "SlashCommandEngine",
    "get_command_catalog",
    "parse_legacy_text",
    "parse_markdown",
    "reduce",
    "render_legacy_text",
    "renumber",
]
