"""
URL configuration for the media library API.

All URLs are mounted under /api/media/ in boot/urls.py.
"""

from django.urls import path

from library import views

app_name = "library"

urlpatterns = [
    path("browse", views.browse_media, name="browse"),
    path("files", views.search_media, name="files"),
    path("metadata", views.file_metadata, name="metadata"),
    path("user-date", views.set_user_date, name="user-date"),
]
