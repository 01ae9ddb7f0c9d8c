from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.shortcuts import redirect, render
from django.views.decorators.http import require_GET, require_http_methods

from .forms import DocumentRequestForm
from .services.document_service import generate_document
from .storage import DocumentStore, OrmDocumentStore
from .utils import PDF_CONTENT_TYPE

logger = logging.getLogger(__name__)

FORM_TEMPLATE = "documents/generator.html"
SUCCESS_TEMPLATE = "documents/success.html"


@require_http_methods(["GET", "POST"])
def document_generator(request: HttpRequest, store: DocumentStore | None = None) -> HttpResponse:
    if request.method != "POST":
        return render(request, FORM_TEMPLATE, {"form": DocumentRequestForm()})
    return _submit_form(request, store or OrmDocumentStore())


def _submit_form(request: HttpRequest, store: DocumentStore) -> HttpResponse:
    form = DocumentRequestForm(request.POST)
    if not form.is_valid():
        # Submitted values are not carried over to the redirected form.
        logger.info("Rejected document request, invalid fields: %s", ", ".join(sorted(form.errors)))
        return redirect("document_generator")

    document = form.to_document()
    response = HttpResponse(content_type=PDF_CONTENT_TYPE)
    result = generate_document(document, response, store)
    if result.ok:
        return response

    logger.warning(
        "Document generation failed (%s) for %s: %s",
        result.failure.value,
        result.filename,
        result.detail,
    )
    return render(request, SUCCESS_TEMPLATE, {"filename": result.filename})


@require_GET
def document_generator_success(request: HttpRequest) -> HttpResponse:
    return render(request, SUCCESS_TEMPLATE)
