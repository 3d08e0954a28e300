"""
Job postings.

Only the fields the chat subsystem relies on live here: a chat request and
its room are always opened in the context of one job, and the job's poster
is the one who accepts or rejects requests.
"""

from django.conf import settings
from django.db import models

from core.models import BaseModel


class Job(BaseModel):
    """
    A job posting.

    Fields:
        title: Position title
        company_name: Employer display name
        created_by: Poster; the recipient of chat requests about this job
    """

    title = models.CharField(max_length=200)
    company_name = models.CharField(max_length=200, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="jobs",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.title
