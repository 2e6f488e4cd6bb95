"""
Tests for OCRService

HTTP не вызывается: _request подменяется,
кроме проверки ответа шлюза на локальном TestServer.
"""
import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aiohttp import test_utils, web

from services.errors import OCRError, OCRTimeoutError
from services.ocr_service import (
    SOURCE_OCR,
    SOURCE_USER,
    OCRService,
    merge_field,
    merge_ocr_fields,
    parse_ocr_response,
)


class TestMergeField:

    def test_user_value_always_wins(self):
        assert merge_field("OCR Name", "Typed", SOURCE_USER) == "Typed"
        assert merge_field("Typed", "OCR Name", SOURCE_OCR, user_edited=True) == "Typed"

    def test_ocr_fills_and_trims(self):
        assert merge_field("", "  Amina  ", SOURCE_OCR) == "Amina"

    def test_empty_ocr_value_keeps_current(self):
        assert merge_field("Amina", "", SOURCE_OCR) == "Amina"
        assert merge_field("Amina", None, SOURCE_OCR) == "Amina"


class TestMergeOcrFields:

    CURRENT = {"customer_name": "", "customer_phone": "+212600000001", "customer_id_number": ""}

    def test_maps_response_keys(self):
        result = parse_ocr_response({"confidence": 0.9, "fields": {"full_name": "Amina", "id_number": "X1"}})

        updates = merge_ocr_fields(self.CURRENT, result)

        assert updates == {"customer_name": "Amina", "customer_id_number": "X1"}

    def test_below_threshold_changes_nothing(self):
        result = parse_ocr_response({"confidence": 0.79, "fields": {"full_name": "Amina"}})

        assert merge_ocr_fields(self.CURRENT, result, threshold=0.8) == {}

    def test_respects_edited_fields(self):
        result = parse_ocr_response({"confidence": 1.0, "fields": {"phone": "+212699999999"}})

        assert merge_ocr_fields(self.CURRENT, result, frozenset({"customer_phone"})) == {}

    def test_unknown_fields_ignored(self):
        result = parse_ocr_response({"confidence": 1.0, "fields": {"blood_type": "A+"}})

        assert merge_ocr_fields(self.CURRENT, result) == {}


class TestParseResponse:

    def test_flat_response(self):
        result = parse_ocr_response({"confidence_estimate": "0.85", "full_name": "Amina"})

        assert result.confidence == 0.85
        assert result.fields == {"full_name": "Amina"}

    def test_bad_confidence_is_zero(self):
        assert parse_ocr_response({"confidence": "high"}).confidence == 0.0


class TestOCRService:

    @pytest.fixture
    def service(self):
        return OCRService(api_url="http://ocr.local/extract", api_key="secret", timeout=0.05)

    async def test_extract_fields(self, service):
        service._request = AsyncMock(return_value={"confidence": 0.9, "fields": {"full_name": "Amina"}})

        result = await service.extract_fields(b"image-bytes")

        assert result.confidence == 0.9
        assert result.fields["full_name"] == "Amina"
        service._request.assert_awaited_once_with(b"image-bytes", "document.jpg")

    async def test_timeout(self, service):
        async def slow(*args):
            await asyncio.sleep(1)

        service._request = slow

        with pytest.raises(OCRTimeoutError):
            await service.extract_fields(b"image-bytes")

    async def test_client_error(self, service):
        service._request = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(OCRError, match="OCR request failed"):
            await service.extract_fields(b"image-bytes")

    async def test_unexpected_payload(self, service):
        service._request = AsyncMock(return_value=["not", "a", "dict"])

        with pytest.raises(OCRError):
            await service.extract_fields(b"image-bytes")

    async def test_html_instead_of_json(self, service):
        service._request = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html>gateway</html>", 0))

        with pytest.raises(OCRError, match="Unexpected OCR response"):
            await service.extract_fields(b"image-bytes")

    async def test_gateway_page_from_server(self):
        async def gateway(request):
            return web.Response(text="<html>gateway</html>", content_type="text/html")

        app = web.Application()
        app.router.add_post("/extract", gateway)

        async with test_utils.TestServer(app) as server:
            service = OCRService(api_url=str(server.make_url("/extract")), api_key="", timeout=5)

            with pytest.raises(OCRError, match="Unexpected OCR response"):
                await service.extract_fields(b"image-bytes")

    async def test_not_configured(self):
        with pytest.raises(OCRError, match="not configured"):
            await OCRService(api_url="").extract_fields(b"image-bytes")

    async def test_empty_image(self, service):
        with pytest.raises(OCRError):
            await service.extract_fields(b"")

    def test_auth_header(self, service):
        assert service._get_headers()["Authorization"] == "Bearer secret"
