import importlib
import os
from io import BytesIO
from unittest import mock
from urllib.parse import quote

from django.core.signals import request_finished
from django.db import DatabaseError
from django.test import RequestFactory, SimpleTestCase, TestCase
from django.urls import reverse
from reportlab.platypus import Paragraph
from reportlab.platypus.doctemplate import LayoutError

from .forms import FieldError, validate_document_request
from .models import DocumentRequest
from .services.document_service import FailureKind, generate_document
from .storage import OrmDocumentStore, StorageError
from .utils import attachment_disposition, build_story, normalize_filename, render_pdf
from .views import document_generator


class RecordingStore:
    def __init__(self, error: Exception | None = None):
        self.saved: list[DocumentRequest] = []
        self.error = error

    def save(self, document):
        if self.error is not None:
            raise self.error
        self.saved.append(document)


class BrokenStream(BytesIO):
    def write(self, data):
        raise OSError("connection reset by peer")


class NormalizeFilenameTests(SimpleTestCase):
    def test_appends_extension(self):
        self.assertEqual(normalize_filename("report"), "report.pdf")

    def test_keeps_existing_extension(self):
        self.assertEqual(normalize_filename("report.pdf"), "report.pdf")

    def test_extension_check_ignores_case(self):
        self.assertEqual(normalize_filename("Report.PDF"), "Report.PDF")

    def test_other_extension_still_gets_pdf(self):
        self.assertEqual(normalize_filename("notes.txt"), "notes.txt.pdf")


class AttachmentDispositionTests(SimpleTestCase):
    def test_ascii_name_is_quoted(self):
        self.assertEqual(attachment_disposition("report.pdf"), 'attachment; filename="report.pdf"')

    def test_quotes_and_backslashes_are_escaped(self):
        self.assertEqual(
            attachment_disposition('Say "hi"\\now.pdf'),
            'attachment; filename="Say \\"hi\\"\\\\now.pdf"',
        )

    def test_non_ascii_name_uses_extended_parameter(self):
        self.assertEqual(
            attachment_disposition("Отчёт.pdf"),
            "attachment; filename*=utf-8''" + quote("Отчёт.pdf"),
        )


class ValidateDocumentRequestTests(SimpleTestCase):
    def test_valid_request_has_no_errors(self):
        self.assertEqual(validate_document_request({"name": "report", "content": "Hello"}), [])

    def test_missing_fields_are_reported_per_field(self):
        errors = validate_document_request({"name": "", "content": "   "})
        self.assertEqual(
            errors,
            [
                FieldError("name", "Name is required."),
                FieldError("content", "Content is required."),
            ],
        )

    def test_name_with_line_break_is_rejected(self):
        for name in ["line\nbreak", "line\rbreak"]:
            errors = validate_document_request({"name": name, "content": "Hello"})
            self.assertEqual([e.field for e in errors], ["name"], name)

    def test_punctuation_and_non_ascii_names_are_accepted(self):
        for name in ['Say "hi"', "Q1/Q2 report", "back\\slash", "Отчёт"]:
            self.assertEqual(validate_document_request({"name": name, "content": "Hello"}), [], name)

    def test_overlong_name_is_rejected(self):
        errors = validate_document_request({"name": "a" * 256, "content": "Hello"})
        self.assertEqual([e.field for e in errors], ["name"])


class RenderPdfTests(SimpleTestCase):
    def test_story_is_a_single_text_block(self):
        story = build_story("Hello")
        self.assertEqual(len(story), 1)
        self.assertIsInstance(story[0], Paragraph)
        self.assertEqual(story[0].getPlainText(), "Hello")

    def test_multiline_content_stays_one_block(self):
        story = build_story("first line\nsecond line")
        self.assertEqual(len(story), 1)

    def test_markup_in_content_is_rendered_as_text(self):
        buffer = BytesIO()
        render_pdf("<b>unclosed & raw", buffer)
        self.assertTrue(buffer.getvalue().startswith(b"%PDF-"))

    def test_renders_pdf_bytes(self):
        buffer = BytesIO()
        render_pdf("Hello", buffer, title="report.pdf")
        data = buffer.getvalue()
        self.assertTrue(data.startswith(b"%PDF-"))
        self.assertIn(b"%%EOF", data)


class GenerateDocumentTests(SimpleTestCase):
    def test_persists_after_rendering(self):
        output = BytesIO()
        seen_at_save: list[bytes] = []

        class InspectingStore:
            def save(self, document):
                seen_at_save.append(output.getvalue())

        document = DocumentRequest(name="report", content="Hello")
        result = generate_document(document, output, InspectingStore())

        self.assertTrue(result.ok)
        self.assertEqual(result.filename, "report.pdf")
        self.assertEqual(len(seen_at_save), 1)
        self.assertTrue(seen_at_save[0].startswith(b"%PDF-"))

    def test_stream_failure_is_reported_as_io(self):
        store = RecordingStore()
        result = generate_document(DocumentRequest(name="report", content="Hello"), BrokenStream(), store)

        self.assertFalse(result.ok)
        self.assertEqual(result.failure, FailureKind.IO)
        self.assertIn("connection reset", result.detail)
        self.assertEqual(store.saved, [])

    def test_layout_failure_is_reported_as_render(self):
        store = RecordingStore()
        with mock.patch(
            "documents.services.document_service.render_pdf", side_effect=LayoutError("too large")
        ):
            result = generate_document(DocumentRequest(name="report", content="Hello"), BytesIO(), store)

        self.assertEqual(result.failure, FailureKind.RENDER)
        self.assertEqual(store.saved, [])

    def test_storage_failure_is_reported(self):
        store = RecordingStore(error=StorageError("database is locked"))
        result = generate_document(DocumentRequest(name="report", content="Hello"), BytesIO(), store)

        self.assertEqual(result.failure, FailureKind.STORAGE)
        self.assertIn("database is locked", result.detail)

    def test_output_only_receives_a_complete_file(self):
        class UnwritableResponse(dict):
            def __init__(self):
                super().__init__()
                self.headers = self
                self.writes = []

            def write(self, data):
                self.writes.append(bytes(data))
                raise OSError("broken pipe")

        store = RecordingStore()
        response = UnwritableResponse()

        result = generate_document(DocumentRequest(name="report", content="Hello"), response, store)

        self.assertEqual(result.failure, FailureKind.IO)
        self.assertEqual(len(response.writes), 1)
        self.assertTrue(response.writes[0].startswith(b"%PDF-"))
        self.assertTrue(response.writes[0].rstrip().endswith(b"%%EOF"))
        self.assertNotIn("Content-Length", response)
        self.assertEqual(store.saved, [])


class OrmDocumentStoreTests(TestCase):
    def test_save_persists_request(self):
        OrmDocumentStore().save(DocumentRequest(name="report", content="Hello"))
        stored = DocumentRequest.objects.get()
        self.assertEqual(stored.name, "report")
        self.assertEqual(stored.content, "Hello")
        self.assertIsNotNone(stored.created_at)

    def test_database_error_becomes_storage_error(self):
        with mock.patch.object(DocumentRequest, "save", side_effect=DatabaseError("disk I/O error")):
            with self.assertRaises(StorageError):
                OrmDocumentStore().save(DocumentRequest(name="report", content="Hello"))


class DocumentGeneratorViewTests(TestCase):
    def test_get_document_generator_page(self):
        response = self.client.get(reverse("document_generator"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Document Generator")
        self.assertTemplateUsed(response, "documents/generator.html")
        self.assertFalse(response.context["form"].is_bound)

    def test_post_returns_pdf_download(self):
        response = self.client.post(
            reverse("document_generator"), {"name": "report", "content": "Hello"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "application/pdf")
        self.assertEqual(response["Content-Disposition"], 'attachment; filename="report.pdf"')
        self.assertEqual(response["Content-Length"], str(len(response.content)))
        self.assertTrue(response.content.startswith(b"%PDF-"))

        stored = DocumentRequest.objects.get()
        self.assertEqual(stored.name, "report")
        self.assertEqual(stored.content, "Hello")

    def test_post_with_extension_does_not_double_it(self):
        response = self.client.post(
            reverse("document_generator"), {"name": "report.pdf", "content": "Hello"}
        )
        self.assertEqual(response["Content-Disposition"], 'attachment; filename="report.pdf"')

    def test_download_keeps_attachment_for_any_name(self):
        cases = {
            "Отчёт": "attachment; filename*=utf-8''" + quote("Отчёт.pdf"),
            "Q1/Q2 report": 'attachment; filename="Q1/Q2 report.pdf"',
            'Say "hi"': 'attachment; filename="Say \\"hi\\".pdf"',
        }
        for name, disposition in cases.items():
            response = self.client.post(reverse("document_generator"), {"name": name, "content": "Hello"})
            self.assertEqual(response.status_code, 200, name)
            self.assertEqual(response["Content-Disposition"], disposition)
            self.assertTrue(response.content.startswith(b"%PDF-"))
        self.assertEqual(
            sorted(DocumentRequest.objects.values_list("name", flat=True)),
            sorted(cases),
        )

    def test_invalid_post_redirects_without_saving(self):
        for data in (
            {"name": "", "content": "Hello"},
            {"name": "report", "content": ""},
            {"name": "   ", "content": "Hello"},
            {},
        ):
            response = self.client.post(reverse("document_generator"), data)
            self.assertRedirects(response, reverse("document_generator"))
        self.assertEqual(DocumentRequest.objects.count(), 0)

    def test_invalid_post_is_logged(self):
        with self.assertLogs("documents.views", level="INFO") as logs:
            self.client.post(reverse("document_generator"), {"name": "", "content": ""})
        self.assertIn("content, name", logs.output[0])

    def test_stream_failure_is_logged_and_success_page_returned(self):
        with mock.patch(
            "documents.services.document_service.render_pdf", side_effect=OSError("broken pipe")
        ):
            with self.assertLogs("documents.views", level="WARNING") as logs:
                response = self.client.post(
                    reverse("document_generator"), {"name": "report", "content": "Hello"}
                )

        self.assertEqual(response.status_code, 200)
        self.assertTemplateUsed(response, "documents/success.html")
        self.assertContains(response, "report.pdf")
        self.assertIn("(io)", logs.output[0])
        self.assertIn("broken pipe", logs.output[0])
        self.assertEqual(DocumentRequest.objects.count(), 0)

    def test_render_failure_is_masked(self):
        with mock.patch(
            "documents.services.document_service.render_pdf", side_effect=LayoutError("too large")
        ):
            with self.assertLogs("documents.views", level="WARNING") as logs:
                response = self.client.post(
                    reverse("document_generator"), {"name": "report", "content": "Hello"}
                )

        self.assertTemplateUsed(response, "documents/success.html")
        self.assertIn("(render)", logs.output[0])
        self.assertEqual(DocumentRequest.objects.count(), 0)

    def test_success_page(self):
        response = self.client.get(reverse("document_generator_success"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Document Generated")

    def test_put_is_not_allowed(self):
        response = self.client.put(reverse("document_generator"))
        self.assertEqual(response.status_code, 405)


class InjectedStoreViewTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.url = reverse("document_generator")

    def test_valid_request_is_saved_once(self):
        store = RecordingStore()
        request = self.factory.post(self.url, {"name": "quarterly", "content": "Hello"})

        response = document_generator(request, store=store)

        self.assertEqual(response["Content-Disposition"], 'attachment; filename="quarterly.pdf"')
        self.assertEqual(len(store.saved), 1)
        self.assertEqual(store.saved[0].name, "quarterly")
        self.assertEqual(store.saved[0].content, "Hello")

    def test_invalid_request_never_reaches_store(self):
        store = RecordingStore()
        request = self.factory.post(self.url, {"name": "quarterly", "content": ""})

        response = document_generator(request, store=store)

        self.assertEqual(response.status_code, 302)
        self.assertEqual(response["Location"], self.url)
        self.assertEqual(store.saved, [])

    def test_storage_failure_is_masked(self):
        store = RecordingStore(error=StorageError("database is locked"))
        request = self.factory.post(self.url, {"name": "quarterly", "content": "Hello"})

        with self.assertLogs("documents.views", level="WARNING") as logs:
            response = document_generator(request, store=store)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Document Generated")
        self.assertIn("(storage)", logs.output[0])

    def test_failed_generation_does_not_finish_the_request(self):
        finished = []

        def on_finished(sender, **kwargs):
            finished.append(sender)

        request_finished.connect(on_finished)
        try:
            store = RecordingStore(error=StorageError("database is locked"))
            request = self.factory.post(self.url, {"name": "quarterly", "content": "Hello"})
            with self.assertLogs("documents.views", level="WARNING"):
                document_generator(request, store=store)
        finally:
            request_finished.disconnect(on_finished)

        self.assertEqual(finished, [])


class ProjectSettingsTests(SimpleTestCase):
    def tearDown(self):
        import crm.settings

        importlib.reload(crm.settings)

    def test_debug_is_off_unless_enabled(self):
        import crm.settings

        env = {k: v for k, v in os.environ.items() if k != "DJANGO_DEBUG"}
        with mock.patch.dict(os.environ, env, clear=True):
            project_settings = importlib.reload(crm.settings)
        self.assertFalse(project_settings.DEBUG)

        with mock.patch.dict(os.environ, {"DJANGO_DEBUG": "true"}):
            project_settings = importlib.reload(crm.settings)
        self.assertTrue(project_settings.DEBUG)

    def test_only_used_apps_are_installed(self):
        import crm.settings

        self.assertEqual(crm.settings.INSTALLED_APPS, ["django.contrib.contenttypes", "documents"])
