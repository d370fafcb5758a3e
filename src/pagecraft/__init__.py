"""Pagecraft - block-based document editing engine.

Key components:
- editor: block model, legacy text parser, ordering, slash commands,
  editing session and autosave
- store: DocumentStore protocol with memory, SQLite and REST backends
"""

__version__ = "0.1.0"
