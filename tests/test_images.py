from io import BytesIO

import pytest
from starlette.datastructures import Headers, UploadFile

from addressbook.core import get_settings
from addressbook.images import ImageRejected, to_stored_image

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def make_upload(content: bytes, filename="photo.png", content_type="image/png"):
    return UploadFile(
        file=BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def test_image_upload_is_stored_with_its_type(session_loop):
    stored = session_loop.run_until_complete(to_stored_image(make_upload(PNG_BYTES)))
    assert stored.data == PNG_BYTES
    assert stored.content_type == "image/png"


def test_missing_upload_means_no_image(session_loop):
    assert session_loop.run_until_complete(to_stored_image(None)) is None
    empty_name = make_upload(PNG_BYTES, filename="")
    assert session_loop.run_until_complete(to_stored_image(empty_name)) is None
    empty_file = make_upload(b"")
    assert session_loop.run_until_complete(to_stored_image(empty_file)) is None


def test_non_image_upload_is_rejected(session_loop):
    upload = make_upload(b"plain text", filename="notes.txt", content_type="text/plain")
    with pytest.raises(ImageRejected):
        session_loop.run_until_complete(to_stored_image(upload))


def test_oversized_image_is_rejected(session_loop, monkeypatch):
    monkeypatch.setattr(get_settings(), "MAX_IMAGE_BYTES", 16)
    with pytest.raises(ImageRejected):
        session_loop.run_until_complete(to_stored_image(make_upload(PNG_BYTES)))
