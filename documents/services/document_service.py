from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import BinaryIO

from reportlab.platypus.doctemplate import LayoutError

from ..models import DocumentRequest
from ..storage import DocumentStore, StorageError
from ..utils import PDF_CONTENT_TYPE, attachment_disposition, normalize_filename, render_pdf

logger = logging.getLogger(__name__)


class FailureKind(str, enum.Enum):
    IO = "io"
    RENDER = "render"
    STORAGE = "storage"


@dataclass
class GenerationResult:
    filename: str
    failure: FailureKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


def _set_header(output: BinaryIO, header: str, value: str) -> None:
    # Plain streams (BytesIO, files) have no headers to set.
    if hasattr(output, "headers"):
        output[header] = value


def generate_document(
    document: DocumentRequest, output: BinaryIO, store: DocumentStore
) -> GenerationResult:
    """
    Stream ``document`` as a PDF download into ``output``, then persist it.

    Failures come back on the result instead of being raised. The PDF is
    built in memory first so ``output`` only ever receives a complete file,
    and the store is only called once that file has been written.
    """
    filename = normalize_filename(document.name)
    _set_header(output, "Content-Type", PDF_CONTENT_TYPE)
    _set_header(output, "Content-Disposition", attachment_disposition(filename))
    _set_header(output, "Cache-Control", "no-store")

    buffer = BytesIO()
    try:
        render_pdf(document.content, buffer, title=filename)
        payload = buffer.getvalue()
        output.write(payload)
    except OSError as exc:
        return GenerationResult(filename, FailureKind.IO, str(exc))
    except (LayoutError, ValueError) as exc:
        return GenerationResult(filename, FailureKind.RENDER, str(exc))
    finally:
        buffer.close()

    _set_header(output, "Content-Length", str(len(payload)))

    try:
        store.save(document)
    except StorageError as exc:
        return GenerationResult(filename, FailureKind.STORAGE, str(exc))

    logger.info("Generated %s (%d bytes)", filename, len(payload))
    return GenerationResult(filename)
