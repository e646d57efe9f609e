def get_line_at(content: str, line: int) -> str:
    """Line without its terminator; empty past the end of the text."""
    lines = content.split("\n")
    if 0 <= line < len(lines):
        return lines[line].removesuffix("\r")
    return ""


def byte_column_to_char_index(line_text: str, byte_column: int) -> int:
    """Number of characters lying wholly before a utf-8 byte offset.

    An offset pointing into the middle of a multi-byte character counts that
    character as not yet reached.
    """
    prefix = line_text.encode("utf-8")[:max(byte_column, 0)]
    return len(prefix.decode("utf-8", errors="ignore"))


def code_units(text: str, encoding: str) -> int:
    """Length of text in the code units of a protocol offset encoding."""
    if encoding == "utf-8":
        return len(text.encode("utf-8"))
    if encoding == "utf-16":
        return len(text.encode("utf-16-le")) // 2
    if encoding == "utf-32":
        return len(text)
    raise ValueError(f"Unknown offset encoding: {encoding}")
