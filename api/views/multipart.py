"""Multipart upload endpoints: initiate, sign parts, complete, abort."""

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from api.decorators import current_identity, json_endpoint, read_json
from uploads.services.planning import STRATEGY_MULTIPART
from uploads.services.sessions import (
    abort_upload_session,
    complete_upload_session,
    initiate_upload,
    sign_part_urls,
)


@csrf_exempt
@require_POST
@json_endpoint
def initiate_view(request):
    """Open a multipart session and return its part plan."""
    body = read_json(request, "eventId", "fileName", "fileType", "fileSize")
    session = initiate_upload(
        body["eventId"],
        body["fileName"],
        body["fileType"],
        body["fileSize"],
        identity=current_identity(request),
        strategy=STRATEGY_MULTIPART,
    )
    return JsonResponse({"success": True, **session.to_wire()})


@csrf_exempt
@require_POST
@json_endpoint
def parts_view(request):
    """Presign PUT URLs for a batch of part numbers."""
    body = read_json(request, "fileKey", "uploadId", "partNumbers")
    urls = sign_part_urls(body["fileKey"], body["uploadId"], body["partNumbers"])
    return JsonResponse(
        {
            "success": True,
            "urls": [{"partNumber": number, "url": url} for number, url in urls],
        }
    )


@csrf_exempt
@require_POST
@json_endpoint
def complete_view(request):
    body = read_json(request, "fileKey", "uploadId")
    completed = complete_upload_session(
        body["fileKey"], body["uploadId"], body.get("parts")
    )
    return JsonResponse(
        {
            "success": True,
            "location": completed.location,
            "etag": completed.etag,
            "fileKey": body["fileKey"],
        }
    )


@csrf_exempt
@require_POST
@json_endpoint
def abort_view(request):
    body = read_json(request, "fileKey", "uploadId")
    outcome = abort_upload_session(body["fileKey"], body["uploadId"])
    if outcome.already_gone:
        message = "Upload not found (may already be completed or aborted)"
    else:
        message = "Multipart upload aborted successfully"
    return JsonResponse({"success": True, "message": message})
