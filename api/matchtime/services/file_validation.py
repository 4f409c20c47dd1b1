import io
import re
import secrets
import time
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

ALLOWED_TYPES: dict[str, set[str]] = {
    "image": {"image/jpeg", "image/jpg", "image/png", "image/webp"},
    "video": {"video/mp4", "video/webm", "video/quicktime"},
    "document": {"application/pdf", "image/jpeg", "image/jpg", "image/png"},
}

MAX_SIZES: dict[str, int] = {
    "image": 10 * 1024 * 1024,
    "video": 50 * 1024 * 1024,
    "document": 20 * 1024 * 1024,
}

DANGEROUS_EXTENSIONS = {"exe", "bat", "cmd", "scr", "pif", "vbs", "js", "jar", "com", "lnk", "reg", "msi", "dll", "sys"}

_RESERVED_CHARS_RE = re.compile(r'[<>:"/\\|?*]')
_RESERVED_NAMES_RE = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\..*)?$", re.IGNORECASE)
_UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass
class FileValidationResult:
    is_valid: bool
    error: str | None = None


def _extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


IMAGE_FORMAT_MIME = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def detect_image_type(data: bytes) -> str | None:
    """Return the MIME type of a decodable JPEG, PNG or WebP image, else None."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError):
        return None
    return IMAGE_FORMAT_MIME.get(image_format or "")


def validate_file(filename: str | None, content_type: str | None, data: bytes, category: str) -> FileValidationResult:
    if not filename:
        return FileValidationResult(False, "Invalid file provided")
    if category not in ALLOWED_TYPES:
        return FileValidationResult(False, "Invalid file category")

    if _extension(filename) in DANGEROUS_EXTENSIONS:
        return FileValidationResult(False, "File type not allowed for security reasons")

    mime = (content_type or "").lower()
    allowed = ALLOWED_TYPES[category]
    if mime not in allowed:
        return FileValidationResult(False, f"File type {mime or 'unknown'} not allowed. Allowed types: {', '.join(sorted(allowed))}")

    if not data:
        return FileValidationResult(False, "Uploaded file is empty")
    max_size = MAX_SIZES[category]
    if len(data) > max_size:
        return FileValidationResult(False, f"File size too large. Maximum allowed: {round(max_size / (1024 * 1024))}MB")

    if _RESERVED_CHARS_RE.search(filename) or _RESERVED_NAMES_RE.match(filename):
        return FileValidationResult(False, "Filename contains invalid characters or patterns")

    if mime.startswith("image/"):
        detected = detect_image_type(data)
        if detected is None or detected not in allowed:
            return FileValidationResult(False, "Invalid image file format")

    return FileValidationResult(True)


def secure_filename(original_name: str, user_id: str, now_ms: int | None = None) -> str:
    clean = _UNSAFE_FILENAME_CHARS_RE.sub("_", original_name or "")
    ext = _extension(clean) or "bin"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = secrets.token_hex(3)
    return f"{user_id}_{stamp}_{suffix}.{ext}"
