"""Turn downloaded bytes into what the extraction service expects."""

import base64
from typing import Union

from ledger_ingest.models.documents import FileType


def decode_content(file_type: FileType, data: bytes) -> Union[str, bytes]:
    """
    Decode raw file bytes by file type.

    - pdf: base64 text
    - image: the bytes unchanged (sent to the model as inline image data)
    - csv, email and anything else: UTF-8 text, undecodable bytes replaced
    """
    file_type = FileType(file_type)
    if file_type == FileType.PDF:
        return base64.b64encode(data).decode("ascii")
    if file_type == FileType.IMAGE:
        return data
    return data.decode("utf-8", errors="replace")
