from django.urls import path

from .views import document_generator, document_generator_success

urlpatterns = [
    path("document-generator", document_generator, name="document_generator"),
    path(
        "document-generator/success",
        document_generator_success,
        name="document_generator_success",
    ),
]
