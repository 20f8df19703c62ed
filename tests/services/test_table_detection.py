from __future__ import annotations

import pytest

from proposal_api.services.table_detection import (
    AsciiPipeTableStrategy,
    DetectedTable,
    GridTableStrategy,
    HtmlTableStrategy,
    MarkdownTableStrategy,
    dedupe_tables,
    detect_calculations,
    detect_currency,
    extract_tables_from_document,
    extract_tables_from_text,
    identify_table_regions,
)
from proposal_api.services.table_formatting import format_table_as_html, format_table_as_markdown
from proposal_api.services.text_extraction import SheetGrid, XLSX_MIME, compose_tagged_text


def test_grid_regions_use_title_row_and_stop_at_blank_row() -> None:
    grid = [
        ["Presupuesto General", "", ""],
        ["Item", "Cantidad", "Precio"],
        ["Cemento", "10", "75"],
        ["Arena", "", "120"],
        ["", "", ""],
        ["", "Cargo", "Horas"],
        ["", "Ingeniero", "40"],
    ]

    regions = identify_table_regions(grid)

    assert len(regions) == 2
    first, second = regions
    assert first.title == "Presupuesto General"
    assert first.headers == ["Item", "Cantidad", "Precio"]
    assert first.rows == [["Cemento", "10", "75"], ["Arena", "", "120"]]
    assert first.a1_range == "A2:C4"
    assert second.title == ""
    assert second.headers == ["Cargo", "Horas"]
    assert second.a1_range == "B6:C7"


def test_grid_header_without_body_is_not_a_table() -> None:
    grid = [["Item", "Precio"], ["", ""], ["Nota suelta", ""]]

    assert identify_table_regions(grid) == []


def test_grid_strategy_falls_back_to_sheet_name_and_adds_metadata() -> None:
    grid = SheetGrid(
        name="Costos",
        cells=[
            ["Concepto", "Monto Bs."],
            ["Materiales", "1000"],
            ["Utilidad: 10%", ""],
        ],
    )

    (table,) = GridTableStrategy().detect(grid)

    assert table.title == "Costos"
    assert table.metadata.currency == "BOB"
    assert [(c.description, c.value) for c in table.metadata.calculations] == [("Utilidad", "10%")]
    assert table.metadata.source.sheet == "Costos"
    assert table.metadata.source.range == "A1:B3"


def test_rows_are_padded_and_truncated_to_header_width() -> None:
    table = AsciiPipeTableStrategy().detect("| A | B | C |\n| 1 | 2 |\n| 3 | 4 | 5 | 6 |\n")[0]

    assert table.rows == [["1", "2", ""], ["3", "4", "5"]]


def test_html_strategy_reads_th_headers_and_heading_title() -> None:
    html = (
        "<h2>Equipo Propuesto</h2>"
        "<table><tr><th>Nombre</th><th>Rol</th></tr>"
        "<tr><td>Ana</td><td>Gerente</td></tr></table>"
        "<table><tr><td>Solo</td><td>Cabecera</td></tr></table>"
    )

    tables = HtmlTableStrategy().detect(html)

    assert len(tables) == 1
    assert tables[0].title == "Equipo Propuesto"
    assert tables[0].headers == ["Nombre", "Rol"]
    assert tables[0].rows == [["Ana", "Gerente"]]


def test_html_strategy_promotes_first_row_and_ignores_nested_rows() -> None:
    html = (
        "<table>"
        "<tr><td>Item</td><td>Detalle</td></tr>"
        "<tr><td>1</td><td><table><tr><td>x</td><td>y</td></tr></table></td></tr>"
        "</table>"
    )

    outer = HtmlTableStrategy().detect(html)[0]

    assert outer.title == ""
    assert outer.headers == ["Item", "Detalle"]
    assert len(outer.rows) == 1
    assert outer.rows == [["1", "x y"]]


def test_ascii_strategy_skips_borders_and_uses_preceding_line_as_title() -> None:
    text = "\n".join(
        [
            "Tabla de precios",
            "+--------+--------+",
            "| Item   | Precio |",
            "+--------+--------+",
            "| Arena  | 120    |",
            "| Grava  | 90     |",
            "+--------+--------+",
            "",
            "Fin del documento",
        ]
    )

    tables = AsciiPipeTableStrategy().detect(text)

    assert len(tables) == 1
    assert tables[0].title == "Tabla de precios"
    assert tables[0].headers == ["Item", "Precio"]
    assert tables[0].rows == [["Arena", "120"], ["Grava", "90"]]


def test_ascii_header_without_body_is_dropped_at_end_of_input() -> None:
    assert AsciiPipeTableStrategy().detect("| Solo | Cabecera |\ntexto normal\n") == []


@pytest.mark.parametrize(
    ("text", "headers", "rows"),
    [
        ("Name | Age\n\nJohn | 30\nAna | 25\n", ["Name", "Age"], [["John", "30"], ["Ana", "25"]]),
        ("Item | Precio\n| Materiales |\nCemento | 75\n", ["Item", "Precio"], [["Cemento", "75"]]),
    ],
)
def test_ascii_header_stays_open_until_first_body_row(text: str, headers: list[str], rows: list[list[str]]) -> None:
    (table,) = AsciiPipeTableStrategy().detect(text)

    assert table.headers == headers
    assert table.rows == rows


def test_ascii_rows_of_dashes_are_data() -> None:
    text = "Item | Precio | Nota\nCemento | 75 | -\n- | - | -\nArena | 10 | x\n"

    (table,) = AsciiPipeTableStrategy().detect(text)

    assert table.rows == [["Cemento", "75", "-"], ["-", "-", "-"], ["Arena", "10", "x"]]


def test_ascii_skips_short_alignment_rows() -> None:
    (table,) = AsciiPipeTableStrategy().detect("A | B\n|---|:---:|\n1 | 2\n")

    assert table.headers == ["A", "B"]
    assert table.rows == [["1", "2"]]


def test_markdown_without_outer_pipes() -> None:
    (table,) = MarkdownTableStrategy().detect("Name | Age\n|---|---|\nJohn | 30")

    assert table.headers == ["Name", "Age"]
    assert table.rows == [["John", "30"]]


def test_html_th_headers_without_heading() -> None:
    (table,) = HtmlTableStrategy().detect(
        "<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td>2</td></tr></table>"
    )

    assert table.title == ""
    assert table.headers == ["A", "B"]
    assert table.rows == [["1", "2"]]


def test_markdown_strategy_requires_separator_row() -> None:
    text = "## Cronograma\n| Fase | Semanas |\n|---|:---:|\n| Diseño | 4 |\n| Obra | 12 |\n\n| a | b |\n| c | d |\n"

    tables = MarkdownTableStrategy().detect(text)

    assert len(tables) == 1
    assert tables[0].title == "Cronograma"
    assert tables[0].headers == ["Fase", "Semanas"]
    assert tables[0].rows == [["Diseño", "4"], ["Obra", "12"]]


def test_markdown_and_ascii_detections_are_deduplicated() -> None:
    text = "Cronograma\n| Fase | Semanas |\n|------|---------|\n| Diseño | 4 |\n| Obra | 12 |\n"

    tables = extract_tables_from_text(text)

    assert len(tables) == 1
    assert tables[0].headers == ["Fase", "Semanas"]
    assert tables[0].title == "Cronograma"


def test_dedupe_keeps_first_and_borrows_missing_title() -> None:
    first = DetectedTable(title="", headers=["A"], rows=[["1"]])
    second = DetectedTable(title="Titulo", headers=["A"], rows=[["1"]])
    other = DetectedTable(title="", headers=["B"], rows=[["2"]])

    result = dedupe_tables([first, second, other])

    assert result == [first, other]
    assert result[0].title == "Titulo"


def test_extract_tables_from_composite_text_uses_both_views() -> None:
    text = compose_tagged_text(
        "<h1>Precios</h1><table><tr><td>Item</td><td>Precio</td></tr><tr><td>Cemento</td><td>75</td></tr></table>",
        "Item\tPrecio\nCemento\t75\n\nPersonal\n| Cargo | Horas |\n| Ingeniero | 40 |",
    )

    tables = extract_tables_from_text(text)

    assert [table.headers for table in tables] == [["Item", "Precio"], ["Cargo", "Horas"]]
    assert tables[0].title == "Precios"
    assert tables[1].title == "Personal"


def test_text_without_tables_yields_nothing() -> None:
    assert extract_tables_from_text("Un párrafo sin ninguna tabla.\nOtro párrafo.") == []


def test_extraction_is_idempotent(workbook_factory) -> None:
    data = workbook_factory({"Hoja1": [["Item", "Precio $"], ["Pala", "15"]]})

    first = extract_tables_from_document(data, XLSX_MIME, "precios.xlsx")
    second = extract_tables_from_document(data, XLSX_MIME, "precios.xlsx")

    assert first == second
    assert first[0].metadata.currency == "USD"


def test_spreadsheet_detection_is_chosen_by_extension(workbook_factory) -> None:
    data = workbook_factory({"Hoja1": [["Item", "Precio"], ["Pala", "15"]]})

    tables = extract_tables_from_document(data, "application/octet-stream", "precios.xlsx")

    assert len(tables) == 1
    assert tables[0].metadata.source.sheet == "Hoja1"


@pytest.mark.parametrize(
    ("cells", "expected"),
    [
        (["Total Bs 100"], "BOB"),
        (["bolivianos"], "BOB"),
        (["Precio $ 20"], "USD"),
        (["Absorbente"], None),
        (["100"], None),
    ],
)
def test_detect_currency(cells: list[str], expected: str | None) -> None:
    assert detect_currency(cells) == expected


def test_detect_calculations_reads_percentages() -> None:
    rows = [["IVA: 13%"], ["Gastos generales: 7.5%"], ["Sin porcentaje"]]

    calculations = detect_calculations(rows)

    assert [(c.description, c.value) for c in calculations] == [("IVA", "13%"), ("Gastos generales", "7.5%")]


def test_formatters_render_title_headers_and_calculations() -> None:
    table = GridTableStrategy().detect(
        SheetGrid(name="Costos", cells=[["Concepto", "Monto"], ["Utilidad: 10%", "<b>"]])
    )[0]

    markdown = format_table_as_markdown(table)
    html = format_table_as_html(table)

    assert markdown.startswith("### Costos\n\n| Concepto | Monto |\n| --- | --- |\n")
    assert "**Utilidad**: 10%" in markdown
    assert "<th>Concepto</th>" in html
    assert "<td>&lt;b&gt;</td>" in html
    assert "<p><strong>Utilidad: 10%</strong></p>" in html
