from __future__ import annotations

import html

from .table_detection import DetectedTable


def format_table_as_markdown(table: DetectedTable) -> str:
    lines: list[str] = []
    if table.title:
        lines.extend([f"### {table.title}", ""])
    if table.headers:
        lines.append("| " + " | ".join(table.headers) + " |")
        lines.append("| " + " | ".join("---" for _ in table.headers) + " |")
    for row in table.rows:
        lines.append("| " + " | ".join(row) + " |")
    lines.append("")

    calculations = table.metadata.calculations or []
    if calculations:
        lines.extend(f"**{calc.description}**: {calc.value}" for calc in calculations)
        lines.append("")
    return "\n".join(lines) + "\n"


def format_table_as_html(table: DetectedTable) -> str:
    parts: list[str] = []
    if table.title:
        parts.append(f"<h3>{html.escape(table.title)}</h3>")
    parts.append("<table>")
    if table.headers:
        header_cells = "".join(f"<th>{html.escape(header)}</th>" for header in table.headers)
        parts.append(f"  <thead><tr>{header_cells}</tr></thead>")
    parts.append("  <tbody>")
    for row in table.rows:
        cells = "".join(f"<td>{html.escape(cell)}</td>" for cell in row)
        parts.append(f"    <tr>{cells}</tr>")
    parts.append("  </tbody>")
    parts.append("</table>")
    for calc in table.metadata.calculations or []:
        parts.append(f"<p><strong>{html.escape(calc.description)}: {html.escape(calc.value)}</strong></p>")
    return "\n".join(parts) + "\n"
