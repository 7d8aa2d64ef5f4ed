"""Upload metadata validation and input sanitization."""

import re
from dataclasses import dataclass

from paperbag.services.exceptions import FileTooLarge, InvalidFileType

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")

MALICIOUS_NAME_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\.exe$",
        r"\.bat$",
        r"\.cmd$",
        r"\.scr$",
        r"\.pif$",
        r"\.com$",
        r"\.vbs$",
        r"\.js$",
        r"\.jar$",
        r"\.php$",
        r"\.asp$",
        r"\.jsp$",
        r"<script",
        r"javascript:",
        r"vbscript:",
        r"onload=",
        r"onerror=",
    )
]


@dataclass(frozen=True)
class FileMetadata:
    """Validated description of an uploaded file."""

    name: str
    content_type: str
    size: int


def format_file_size(num_bytes: int) -> str:
    """Human-readable size, e.g. 10 MB."""
    size = float(num_bytes)
    for unit in ("Bytes", "KB", "MB"):
        if size < 1024:
            return f"{size:g} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


def sanitize_input(value: str, max_length: int = 1000) -> str:
    """Strip markup brackets, script protocols and inline event handlers."""
    value = re.sub(r"[<>]", "", value)
    value = re.sub(r"javascript:", "", value, flags=re.IGNORECASE)
    value = re.sub(r"vbscript:", "", value, flags=re.IGNORECASE)
    value = re.sub(r"on\w+=", "", value, flags=re.IGNORECASE)
    return value.strip()[:max_length]


def sanitize_file_name(file_name: str) -> str:
    """Reduce a file name to letters, digits, dots and dashes (max 100 chars)."""
    name = re.sub(r"[^a-zA-Z0-9.-]", "_", file_name)
    name = re.sub(r"_{2,}", "_", name)
    name = name.strip("_")
    return name[:100]


def validate_file_metadata(
    file_size: int | None,
    file_type: str | None,
    max_size: int = MAX_FILE_SIZE,
) -> None:
    """Check client-reported size and content type when present.

    Raises:
        FileTooLarge: If the size exceeds `max_size`
        InvalidFileType: If the content type is not an allowed image type
    """
    if file_size is not None and file_size > max_size:
        raise FileTooLarge(f"File size must be less than {format_file_size(max_size)}")
    if file_type is not None and file_type not in ALLOWED_TYPES:
        raise InvalidFileType(
            f"File type {file_type} is not allowed. Allowed types: {', '.join(ALLOWED_TYPES)}"
        )


def validate_file_security(
    file_name: str, content_type: str, size: int, max_size: int = MAX_FILE_SIZE
) -> FileMetadata:
    """Full pre-upload validation of a local file.

    Returns:
        FileMetadata with the sanitized name

    Raises:
        FileTooLarge: If the file is too large
        InvalidFileType: If the type is not allowed or the name looks malicious
    """
    validate_file_metadata(size, content_type, max_size)

    lowered = file_name.lower()
    if any(pattern.search(lowered) for pattern in MALICIOUS_NAME_PATTERNS):
        raise InvalidFileType("File name contains potentially malicious content")

    return FileMetadata(name=sanitize_file_name(file_name), content_type=content_type, size=size)


def is_valid_image_content(header: bytes) -> bool:
    """Check the leading bytes for a PNG, JPEG, GIF or WebP signature."""
    if header[:4] == b"\x89PNG":
        return True
    if header[:3] == b"\xff\xd8\xff":
        return True
    if header[:3] == b"GIF":
        return True
    return header[8:12] == b"WEBP"
