"""
URL configuration for the uploads API.

All URLs are mounted under /api/upload/ in boot/urls.py.
"""

from django.urls import path

from uploads import views

app_name = "uploads"

urlpatterns = [
    path("start", views.start_upload, name="start"),
    path("chunk", views.upload_chunk, name="chunk"),
    path("complete", views.complete_upload, name="complete"),
    path("progress", views.upload_progress, name="progress"),
    path("pause", views.pause_upload, name="pause"),
    path("resume", views.resume_upload, name="resume"),
    path("cancel", views.cancel_upload, name="cancel"),
]
