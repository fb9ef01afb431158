"""
URL configuration for the upload API.

All URLs are mounted under /api/ in boot/urls.py.
"""

from django.urls import path

from api.views import multipart, uploads

app_name = "api"

urlpatterns = [
    # Multipart protocol
    path("multipart/initiate/", multipart.initiate_view, name="multipart-initiate"),
    path("multipart/parts/", multipart.parts_view, name="multipart-parts"),
    path("multipart/complete/", multipart.complete_view, name="multipart-complete"),
    path("multipart/abort/", multipart.abort_view, name="multipart-abort"),
    # Single PUT
    path("upload-url/", uploads.upload_url_view, name="upload-url"),
    # Records and moderation
    path("uploads/", uploads.create_upload_view, name="upload-create"),
    path("uploads/<str:upload_id>/approve/", uploads.approve_upload_view, name="upload-approve"),
    path("uploads/<str:upload_id>/reject/", uploads.reject_upload_view, name="upload-reject"),
]
