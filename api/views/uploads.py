"""Single-PUT signing, upload records and moderation endpoints."""

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from api.decorators import current_identity, json_endpoint, read_json
from uploads.services.planning import STRATEGY_SINGLE
from uploads.services.sessions import initiate_upload
from uploads.services.uploads import (
    approve_upload,
    create_upload_record,
    reject_upload,
    upload_payload,
)


@csrf_exempt
@require_POST
@json_endpoint
def upload_url_view(request):
    """Presign a single PUT for a small file."""
    body = read_json(request, "eventId", "fileName", "fileType", "fileSize")
    signed = initiate_upload(
        body["eventId"],
        body["fileName"],
        body["fileType"],
        body["fileSize"],
        identity=current_identity(request),
        strategy=STRATEGY_SINGLE,
    )
    return JsonResponse({"success": True, **signed.to_wire()})


@csrf_exempt
@require_POST
@json_endpoint
def create_upload_view(request):
    """Record an upload whose object is already in storage."""
    body = read_json(
        request, "eventId", "fileKey", "fileName", "fileSize", "mimeType"
    )
    record = create_upload_record(
        current_identity(request),
        body["eventId"],
        body["fileKey"],
        body["fileName"],
        body["fileSize"],
        body["mimeType"],
        uploader_name=body.get("uploaderName") or "",
        caption=body.get("caption") or "",
    )
    return JsonResponse({"success": True, "upload": upload_payload(record)}, status=201)


@require_POST
@json_endpoint
def approve_upload_view(request, upload_id):
    record = approve_upload(current_identity(request), upload_id)
    return JsonResponse({"success": True, "upload": upload_payload(record)})


@require_POST
@json_endpoint
def reject_upload_view(request, upload_id):
    reject_upload(current_identity(request), upload_id)
    return JsonResponse({"success": True})
