from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from django import forms

from .models import DocumentRequest

NAME_MAX_LENGTH = DocumentRequest._meta.get_field("name").max_length
# Header values cannot span lines.
FORBIDDEN_NAME_CHARACTERS = set("\r\n")


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


def validate_document_request(data: Mapping[str, object]) -> list[FieldError]:
    errors: list[FieldError] = []
    name = str(data.get("name") or "").strip()
    content = str(data.get("content") or "").strip()

    if not name:
        errors.append(FieldError("name", "Name is required."))
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(FieldError("name", f"Name must be at most {NAME_MAX_LENGTH} characters."))
    elif FORBIDDEN_NAME_CHARACTERS.intersection(name):
        errors.append(FieldError("name", "Name cannot contain line breaks."))

    if not content:
        errors.append(FieldError("content", "Content is required."))
    return errors


class DocumentRequestForm(forms.Form):
    name = forms.CharField(
        label="Document Name",
        required=False,
        widget=forms.TextInput(attrs={"placeholder": "report", "class": "form-input"}),
    )
    content = forms.CharField(
        label="Content",
        required=False,
        strip=False,
        widget=forms.Textarea(attrs={"rows": 8, "placeholder": "Document text", "class": "form-input"}),
    )

    def clean(self):
        cleaned = super().clean()
        for error in validate_document_request(cleaned):
            self.add_error(error.field, error.message)
        return cleaned

    def to_document(self) -> DocumentRequest:
        return DocumentRequest(
            name=self.cleaned_data["name"].strip(),
            content=self.cleaned_data["content"],
        )
