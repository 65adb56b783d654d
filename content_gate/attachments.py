"""첨부파일 인코딩 — 바이트를 data: URL locator로 만들고 되돌린다."""

import base64
import binascii
from datetime import datetime

from content_gate.domain import FileAttachment, generate_id
from content_gate.errors import ValidationError

DEFAULT_MIME_TYPE = "application/octet-stream"


def encode_attachment(name: str, mime_type: str, data: bytes) -> FileAttachment:
    mime_type = mime_type or DEFAULT_MIME_TYPE
    payload = base64.b64encode(data).decode("ascii")
    return FileAttachment(
        id=generate_id(),
        name=name,
        type=mime_type,
        size=len(data),
        locator=f"data:{mime_type};base64,{payload}",
        uploaded_at=datetime.now(),
    )


def decode_locator(locator: str) -> bytes:
    header, sep, payload = locator.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValidationError("첨부파일 형식이 올바르지 않습니다.")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValidationError("첨부파일 형식이 올바르지 않습니다.") from e
