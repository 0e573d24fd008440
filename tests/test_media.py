import httpx
import pytest

from app.services.media import MediaUploader, MediaUploadError


def _uploader(handler) -> MediaUploader:
    return MediaUploader(
        upload_url="https://media.test/image/upload",
        upload_preset="pets_unsigned",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_upload_returns_secure_url_and_sends_preset():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"secure_url": "https://media.test/pets/abc.jpg", "public_id": "pets/abc", "width": 640},
        )

    uploader = _uploader(handler)
    try:
        img = await uploader.upload_image(filename="rex.jpg", content=b"\xff\xd8jpeg", content_type="image/jpeg")
    finally:
        await uploader.aclose()

    assert img.url == "https://media.test/pets/abc.jpg"
    assert img.public_id == "pets/abc"
    assert img.width == 640

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert b'name="upload_preset"' in seen[0].content
    assert b"pets_unsigned" in seen[0].content
    assert b'filename="rex.jpg"' in seen[0].content


@pytest.mark.asyncio
async def test_server_error_is_retryable():
    uploader = _uploader(lambda request: httpx.Response(503, text="busy"))
    try:
        with pytest.raises(MediaUploadError) as exc:
            await uploader.upload_image(filename="a.png", content=b"png", content_type="image/png")
    finally:
        await uploader.aclose()

    assert exc.value.status_code == 503
    assert exc.value.retryable


@pytest.mark.asyncio
async def test_rejected_upload_is_not_retryable():
    uploader = _uploader(lambda request: httpx.Response(400, json={"error": {"message": "bad preset"}}))
    try:
        with pytest.raises(MediaUploadError) as exc:
            await uploader.upload_image(filename="a.png", content=b"png", content_type="image/png")
    finally:
        await uploader.aclose()

    assert exc.value.status_code == 400
    assert not exc.value.retryable


@pytest.mark.asyncio
async def test_response_without_url_fails():
    uploader = _uploader(lambda request: httpx.Response(200, json={"public_id": "x"}))
    try:
        with pytest.raises(MediaUploadError):
            await uploader.upload_image(filename="a.png", content=b"png", content_type="image/png")
    finally:
        await uploader.aclose()


@pytest.mark.asyncio
async def test_timeout_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    uploader = _uploader(handler)
    try:
        with pytest.raises(MediaUploadError) as exc:
            await uploader.upload_image(filename="a.png", content=b"png", content_type="image/png")
    finally:
        await uploader.aclose()

    assert exc.value.retryable


@pytest.mark.asyncio
async def test_empty_content_is_rejected_before_any_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    uploader = _uploader(handler)
    try:
        with pytest.raises(MediaUploadError):
            await uploader.upload_image(filename="a.png", content=b"", content_type="image/png")
    finally:
        await uploader.aclose()
