from __future__ import annotations

import mimetypes

from fastapi import APIRouter, Query
from fastapi.responses import Response

from expense_ocr.modules.files.service import read_signed_object

router = APIRouter(tags=["files"])


@router.get("/files/{key:path}")
def download_signed_file(key: str, token: str = Query(...)) -> Response:
    body = read_signed_object(key=key, token=token)
    media_type, _ = mimetypes.guess_type(key)
    return Response(content=body, media_type=media_type or "application/octet-stream")
