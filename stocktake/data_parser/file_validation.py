import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..errors import ParseFailure

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".xlsx", ".xlsm")
MIN_FILE_SIZE = 100
ZIP_SIGNATURE = b"PK\x03\x04"


@dataclass
class UploadCheck:
    file_name: str
    file_size: int
    warnings: List[str] = field(default_factory=list)


def validate_upload(file_name: str, content: bytes, max_bytes: int) -> UploadCheck:
    """
    Check an uploaded workbook before parsing it.

    Raises:
        ParseFailure: wrong extension, too small or too large, or not a ZIP
            container (every .xlsx/.xlsm is one).
    """
    prefix = "[validate_upload]"
    name = (file_name or "").strip()
    size = len(content or b"")

    extension = Path(name).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise ParseFailure(f"Unsupported file type '{extension or name}'. "
                           f"Allowed: {', '.join(ALLOWED_EXTENSIONS)}")

    if size < MIN_FILE_SIZE:
        raise ParseFailure(f"File '{name}' is too small ({size} bytes) to be a valid workbook")

    if size > max_bytes:
        raise ParseFailure(f"File '{name}' is too large: {size / 1024 / 1024:.2f}MB "
                           f"(limit {max_bytes / 1024 / 1024:.2f}MB)")

    if not content.startswith(ZIP_SIGNATURE):
        raise ParseFailure(f"File '{name}' is not a valid Excel workbook (missing ZIP signature)")

    check = UploadCheck(file_name=name, file_size=size)
    if size > max_bytes // 2:
        check.warnings.append("Large file, processing may take longer.")
        logger.warning(f"{prefix} Large upload '{name}': {size} bytes")
    return check
