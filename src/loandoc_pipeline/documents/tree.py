"""
Renderer-neutral document tree produced by the builders.

A tree is a title, an optional subtitle and an ordered list of blocks. The
PDF renderer walks the blocks; `plain_text()` gives the flat text used by
verification and by tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple, Union


@dataclass(frozen=True)
class Heading:
    text: str
    level: int = 1


@dataclass(frozen=True)
class Paragraph:
    text: str
    bold: bool = False


@dataclass(frozen=True)
class Bullets:
    items: Tuple[str, ...]


@dataclass(frozen=True)
class KeyValueTable:
    rows: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Table:
    header: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]


@dataclass(frozen=True)
class Signature:
    party: str
    name: str
    title: str = ""


@dataclass(frozen=True)
class Note:
    text: str


Block = Union[Heading, Paragraph, Bullets, KeyValueTable, Table, Signature, Note]


@dataclass
class DocumentTree:
    title: str
    subtitle: str = ""
    blocks: List[Block] = field(default_factory=list)

    # small fluent helpers so builders read top to bottom
    def heading(self, text: str, level: int = 1) -> "DocumentTree":
        self.blocks.append(Heading(text, level))
        return self

    def para(self, text: str, bold: bool = False) -> "DocumentTree":
        if text:
            self.blocks.append(Paragraph(text, bold))
        return self

    def bullets(self, items: List[str]) -> "DocumentTree":
        items = [i for i in items if i]
        if items:
            self.blocks.append(Bullets(tuple(items)))
        return self

    def key_values(self, rows: List[Tuple[str, str]]) -> "DocumentTree":
        self.blocks.append(KeyValueTable(tuple(rows)))
        return self

    def table(self, header: List[str], rows: List[List[str]]) -> "DocumentTree":
        self.blocks.append(Table(tuple(header), tuple(tuple(r) for r in rows)))
        return self

    def signature(self, party: str, name: str, title: str = "") -> "DocumentTree":
        self.blocks.append(Signature(party, name, title))
        return self

    def note(self, text: str) -> "DocumentTree":
        self.blocks.append(Note(text))
        return self

    def plain_text(self) -> str:
        lines: List[str] = [self.title]
        if self.subtitle:
            lines.append(self.subtitle)
        for block in self.blocks:
            if isinstance(block, (Heading, Paragraph, Note)):
                lines.append(block.text)
            elif isinstance(block, Bullets):
                lines.extend(f"- {item}" for item in block.items)
            elif isinstance(block, KeyValueTable):
                lines.extend(f"{k}: {v}" for k, v in block.rows)
            elif isinstance(block, Table):
                lines.append(" | ".join(block.header))
                lines.extend(" | ".join(row) for row in block.rows)
            elif isinstance(block, Signature):
                lines.append(f"{block.party}: {block.name}" + (f", {block.title}" if block.title else ""))
        return "\n".join(lines)
