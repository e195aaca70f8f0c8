from typing import Iterable, List, Literal, Optional


def escape_cell(value) -> str:
    """Render a value for a Markdown table cell (pipes and newlines escaped)."""
    if value is None:
        return "-"
    text = str(value)
    return text.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of values (None renders as "-").
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    # If no headers, take the first row as header and remove it from rows
    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [escape_cell(h) for h in headers]
    rows = [[escape_cell(cell) for cell in row] for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(row) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


def markdown_lines(pairs: Iterable[tuple]) -> str:
    """`**label:** value` lines joined with Markdown hard breaks."""
    return "  \n".join(f"**{label}:** {escape_cell(value)}" for label, value in pairs)
