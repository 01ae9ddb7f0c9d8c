from __future__ import annotations

from typing import BinaryIO
from xml.sax.saxutils import escape

from django.utils.http import content_disposition_header
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Flowable, Paragraph, SimpleDocTemplate

from . import conf

PDF_EXTENSION = ".pdf"
PDF_CONTENT_TYPE = "application/pdf"


def normalize_filename(name: str) -> str:
    """
    Make sure a download name carries the PDF extension exactly once.
    report -> report.pdf
    report.pdf -> report.pdf
    """
    filename = (name or "").strip()
    if not filename.lower().endswith(PDF_EXTENSION):
        filename += PDF_EXTENSION
    return filename


def attachment_disposition(filename: str) -> str:
    # Quotes and backslashes are escaped; non-ASCII names use filename*.
    return content_disposition_header(True, filename)


def _body_style() -> ParagraphStyle:
    styles = getSampleStyleSheet()
    return ParagraphStyle(
        "DocumentBody",
        parent=styles["Normal"],
        fontName="Helvetica",
        fontSize=11,
        leading=15,
        alignment=TA_LEFT,
    )


def build_story(content: str) -> list[Flowable]:
    # One paragraph block; line breaks survive as <br />.
    markup = escape(content).replace("\r\n", "\n").replace("\n", "<br />")
    return [Paragraph(markup, _body_style())]


def render_pdf(content: str, output: BinaryIO, *, title: str = "") -> None:
    """
    Render ``content`` as a single-paragraph PDF straight into ``output``.

    ``output`` only needs a ``write`` method, so an ``HttpResponse`` works as
    well as a ``BytesIO``. reportlab flushes the whole file when the
    document is built.
    """
    doc = SimpleDocTemplate(
        output,
        pagesize=conf.page_size(),
        rightMargin=20 * mm,
        leftMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title=title,
        author=conf.pdf_author(),
    )
    doc.build(build_story(content))
