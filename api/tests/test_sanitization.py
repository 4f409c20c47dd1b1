import io

import pytest
from PIL import Image

from matchtime.services.file_validation import detect_image_type, secure_filename, validate_file
from matchtime.services.sanitization import optional_clean, strip_tags, validate_message


def _image_bytes(image_format):
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 40, 90)).save(buf, format=image_format)
    return buf.getvalue()


PNG_BYTES = _image_bytes("PNG")
JPEG_BYTES = _image_bytes("JPEG")


def test_strip_tags_keeps_text_and_drops_script_blocks():
    assert strip_tags("<b>hello</b> there") == "hello there"
    assert strip_tags("hi<script>alert(1)</script>!") == "hi!"


def test_validate_message_cleans_markup():
    assert validate_message("  hello <i>you</i>  ") == "hello you"


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "<script>alert(1)</script>", "click javascript:void(0)", "<img onerror=x>", "a" * 2001],
)
def test_validate_message_rejects(raw):
    with pytest.raises(ValueError):
        validate_message(raw)


def test_optional_clean():
    assert optional_clean(None, 10, "bio") is None
    assert optional_clean("  <p></p> ", 10, "bio") is None
    assert optional_clean("<b>ok</b>", 10, "bio") == "ok"
    with pytest.raises(ValueError, match="bio must be 3 characters or fewer"):
        optional_clean("toolong", 3, "bio")


def test_validate_file_accepts_real_images_and_pdfs():
    assert validate_file("me.png", "image/png", PNG_BYTES, "image").is_valid
    assert validate_file("me.jpg", "image/jpeg", JPEG_BYTES, "image").is_valid
    assert validate_file("id.pdf", "application/pdf", b"%PDF-1.7 body", "document").is_valid


def test_validate_file_rejections():
    assert validate_file("evil.exe", "image/png", PNG_BYTES, "image").error == "File type not allowed for security reasons"
    assert not validate_file("me.png", "text/plain", PNG_BYTES, "image").is_valid
    assert validate_file("me.png", "image/png", b"", "image").error == "Uploaded file is empty"
    assert validate_file("me.jpg", "image/jpeg", b"GIF89a......", "image").error == "Invalid image file format"
    assert not validate_file("CON.png", "image/png", PNG_BYTES, "image").is_valid
    assert not validate_file(None, "image/png", PNG_BYTES, "image").is_valid

    too_big = PNG_BYTES + b"\x00" * (10 * 1024 * 1024)
    assert "too large" in validate_file("big.png", "image/png", too_big, "image").error


def test_secure_filename_is_prefixed_and_safe():
    name = secure_filename("../my photo!.PNG", "user-1", now_ms=1700000000000)
    assert name.startswith("user-1_1700000000000_")
    assert name.endswith(".png")
    assert "/" not in name and " " not in name


def test_image_header_followed_by_markup_is_rejected():
    disguised = b"\xff\xd8\xff<html><script>alert(1)</script></html>"
    assert detect_image_type(disguised) is None
    assert validate_file("a.jpg", "image/jpeg", disguised, "image").error == "Invalid image file format"

    truncated_png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
    assert not validate_file("me.png", "image/png", truncated_png, "image").is_valid


def test_detect_image_type_reads_decoded_format():
    assert detect_image_type(PNG_BYTES) == "image/png"
    assert detect_image_type(JPEG_BYTES) == "image/jpeg"
    assert detect_image_type(_image_bytes("GIF")) is None
    assert not validate_file("anim.png", "image/png", _image_bytes("GIF"), "image").is_valid
