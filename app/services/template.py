import logging
from pathlib import Path
from typing import Iterable, Sequence, Union

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

logger = logging.getLogger("itinerary_server.render")

BRAND_BLUE = RGBColor(37, 99, 235)  # Blue-600
MUTED_GRAY = RGBColor(75, 85, 99)  # Gray-600


def _add_loop_table(
    doc, loop: str, headers: Sequence[str], cells: Iterable[str]
) -> None:
    """Header row, then a row repeated once per item of `loop`."""
    cells = list(cells)
    table = doc.add_table(rows=4, cols=len(headers))
    table.style = "Table Grid"
    for cell, title in zip(table.rows[0].cells, headers):
        cell.text = title
        for run in cell.paragraphs[0].runs:
            run.bold = True
    table.rows[1].cells[0].text = f"{{%tr for row in {loop} %}}"
    for cell, value in zip(table.rows[2].cells, cells):
        cell.text = value
    table.rows[3].cells[0].text = "{%tr endfor %}"


def build_default_template(path: Union[str, Path]) -> Path:
    """
    Write the stock itinerary template. It declares every placeholder the
    itinerary formatter produces, so it renders as-is or can be restyled in
    Word as long as the tags are kept.
    """
    path = Path(path)
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(10)

    header = doc.sections[0].header
    contact = header.paragraphs[0]
    contact.text = "{{ address }} | {{ phone }} | {{ email }} | {{ web }}"
    contact.alignment = WD_ALIGN_PARAGRAPH.RIGHT

    doc.add_paragraph("{{ logo }}")

    title = doc.add_paragraph()
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = title.add_run("{{ company_name }}")
    run.bold = True
    run.font.size = Pt(20)
    run.font.color.rgb = BRAND_BLUE

    doc.add_paragraph("{{ cover_image }}").alignment = WD_ALIGN_PARAGRAPH.CENTER

    doc.add_heading("Tour Summary", level=1)
    doc.add_paragraph("Guest: {{ tourist_name }}")
    doc.add_paragraph("Travellers: {{ no_of_travellers }}")
    doc.add_paragraph("Duration: {{ total_days }} Days / {{ total_nights }} Nights")
    doc.add_paragraph("Travel dates: {{ travel_date_period }}")
    doc.add_paragraph("Route: {{ route }}")
    doc.add_paragraph("{{ route_map }}").alignment = WD_ALIGN_PARAGRAPH.CENTER

    doc.add_heading("Itinerary at a Glance", level=1)
    _add_loop_table(
        doc,
        "itb_table",
        ("Day", "Place", "Activity"),
        ("{{ row.day_number }}", "{{ row.place }}", "{{ row.activity }}"),
    )

    doc.add_heading("Day by Day", level=1)
    doc.add_paragraph("{%p for day in details %}")
    day_title = doc.add_paragraph().add_run("{{ day.title }}")
    day_title.bold = True
    day_title.font.color.rgb = BRAND_BLUE
    doc.add_paragraph("{{ day.description }}")
    meals = doc.add_paragraph().add_run("Meals {{ day.food_supply }} | {{ day.overnight_stay }}")
    meals.font.color.rgb = MUTED_GRAY
    doc.add_paragraph("{%p endfor %}")

    doc.add_heading("Accommodation", level=1)
    _add_loop_table(
        doc,
        "accommodation",
        ("City", "Hotel"),
        ("{{ row.city }}", "{{ row.hotel }}"),
    )

    doc.add_paragraph("Departure: {{ departure_date }}")

    path.parent.mkdir(parents=True, exist_ok=True)
    doc.save(str(path))
    logger.info(f"Default template written to {path}")
    return path


def ensure_template(path: Union[str, Path]) -> Path:
    path = Path(path)
    if not path.exists():
        build_default_template(path)
    return path
