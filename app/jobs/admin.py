from django.contrib import admin

from jobs.models import Job


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ("title", "company_name", "created_by", "created_at")
    search_fields = ("title", "company_name", "created_by__email")
    raw_id_fields = ("created_by",)
