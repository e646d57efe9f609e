"""Editor selection descriptions and their protocol coordinates.

The editor describes a selection as ``anchor,cursor`` where each side is
``line.column``: 1-based, with the column counting utf-8 bytes and the end of
the selection inclusive.
"""

from dataclasses import dataclass

from ..lsp.types import Position, Range
from .text import byte_column_to_char_index, code_units, get_line_at


@dataclass(frozen=True, order=True)
class NativePosition:
    line: int
    column: int


@dataclass(frozen=True)
class NativeRange:
    start: NativePosition
    end: NativePosition


def parse_native_position(desc: str) -> NativePosition:
    try:
        line, column = desc.split(".")
        return NativePosition(line=int(line), column=int(column))
    except ValueError:
        raise ValueError(f"Invalid position description: {desc!r}")


def parse_selection_desc(desc: str) -> tuple[NativeRange, NativePosition]:
    """Split ``a.b,c.d`` into an ordered range and the cursor side."""
    parts = desc.strip().split(",")
    if len(parts) != 2:
        raise ValueError(f"Invalid selection description: {desc!r}")
    anchor = parse_native_position(parts[0])
    cursor = parse_native_position(parts[1])
    start, end = sorted((anchor, cursor))
    return NativeRange(start=start, end=end), cursor


def native_position_to_lsp(
    position: NativePosition, text: str, offset_encoding: str
) -> Position:
    line = max(position.line - 1, 0)
    line_text = get_line_at(text, line)
    char_index = byte_column_to_char_index(line_text, position.column - 1)
    return Position(
        line=line, character=code_units(line_text[:char_index], offset_encoding)
    )


def native_range_to_lsp(range: NativeRange, text: str, offset_encoding: str) -> Range:
    start = native_position_to_lsp(range.start, text, offset_encoding)

    # The end column addresses the first byte of the last selected character,
    # which the protocol range has to include.
    end_line = max(range.end.line - 1, 0)
    line_text = get_line_at(text, end_line)
    char_index = byte_column_to_char_index(line_text, range.end.column - 1) + 1
    char_index = min(char_index, len(line_text))
    end = Position(
        line=end_line, character=code_units(line_text[:char_index], offset_encoding)
    )

    return Range(start=start, end=end)


def ranges_lines_overlap(a: Range, b: Range) -> bool:
    return a.start.line <= b.end.line and a.end.line >= b.start.line
