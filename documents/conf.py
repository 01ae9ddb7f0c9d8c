from __future__ import annotations

from django.conf import settings
from reportlab.lib.pagesizes import A4, LETTER

PAGE_SIZES = {"A4": A4, "LETTER": LETTER}


def pdf_author() -> str:
    return str(getattr(settings, "DOCUMENTS_PDF_AUTHOR", "CRM"))


def page_size() -> tuple[float, float]:
    """Resolve the configured page size name, falling back to A4."""
    name = str(getattr(settings, "DOCUMENTS_PAGE_SIZE", "A4")).strip().upper()
    return PAGE_SIZES.get(name, A4)
