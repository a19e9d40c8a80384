import logging
from typing import Iterable, Optional

from fastapi import HTTPException
from starlette.datastructures import UploadFile
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "No image uploaded"


def too_large_message(limit: int) -> str:
    return f"Payload content length greater than maximum allowed: {limit}"


class MissingImage(Exception):
    pass


class PayloadTooLarge(HTTPException):
    def __init__(self, limit: int):
        super().__init__(status_code=413, detail=too_large_message(limit))
        self.limit = limit


class UploadLimitMiddleware:
    """Reject request bodies over `max_body_size` before they are buffered.

    Declared Content-Length is checked up front; the streamed body is
    counted as well so a missing or wrong header cannot bypass the limit.
    """

    def __init__(self, app, max_body_size: int, max_upload_size: int, paths: Iterable[str] = ("/predict",)):
        self.app = app
        self.max_body_size = max_body_size
        self.max_upload_size = max_upload_size
        self.paths = set(paths)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] not in self.paths:
            await self.app(scope, receive, send)
            return

        declared = _content_length(scope)
        if declared is not None and declared > self.max_body_size:
            logger.info("Rejected %s: declared body of %d bytes", scope["path"], declared)
            response = JSONResponse(
                status_code=413,
                content={"status": "fail", "message": too_large_message(self.max_upload_size)},
            )
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_size:
                    logger.info("Rejected %s: streamed body exceeded %d bytes", scope["path"], self.max_body_size)
                    raise PayloadTooLarge(self.max_upload_size)
            return message

        await self.app(scope, limited_receive, send)


def _content_length(scope) -> Optional[int]:
    for name, value in scope.get("headers", []):
        if name == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


async def read_upload(image, max_bytes: int) -> bytes:
    """Return the uploaded bytes, re-checking the size against what was received."""
    if image is None or not isinstance(image, UploadFile):
        raise MissingImage(NO_IMAGE_MESSAGE)
    data = await image.read()
    if not data and not image.filename:
        # browsers send an empty, unnamed part when no file was chosen
        raise MissingImage(NO_IMAGE_MESSAGE)
    if len(data) > max_bytes:
        raise PayloadTooLarge(max_bytes)
    return data
