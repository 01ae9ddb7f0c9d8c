from django.db import models


class DocumentRequest(models.Model):
    """A user-submitted request for a generated document."""

    name = models.CharField(max_length=255)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name
