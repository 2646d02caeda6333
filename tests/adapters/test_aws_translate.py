import json

import httpx
import pytest

from adapters.aws_translate import TRANSLATE_TARGET, AwsTranslateClient
from domain.errors import TranslationServiceError
from domain.signing import AwsCredentials

CREDENTIALS = AwsCredentials("AKIDEXAMPLE", "secret", session_token="token")


def _client(handler) -> AwsTranslateClient:
    return AwsTranslateClient(
        "ap-northeast-2",
        CREDENTIALS,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestAwsTranslateClient:
    @pytest.mark.asyncio
    async def test_translate_request(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"TranslatedText": "안녕하세요", "SourceLanguageCode": "en"})

        client = _client(handler)
        assert await client.translate("hello", "en", "ko") == "안녕하세요"
        await client.aclose()

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://translate.ap-northeast-2.amazonaws.com/"
        assert request.headers["X-Amz-Target"] == TRANSLATE_TARGET
        assert request.headers["Content-Type"] == "application/x-amz-json-1.1"
        assert request.headers["X-Amz-Security-Token"] == "token"
        assert request.headers["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")
        assert "/ap-northeast-2/translate/aws4_request" in request.headers["Authorization"]
        assert json.loads(request.content) == {
            "Text": "hello",
            "SourceLanguageCode": "en",
            "TargetLanguageCode": "ko",
        }

    @pytest.mark.asyncio
    async def test_service_error_carries_status_and_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={"__type": "ThrottlingException", "message": "Rate exceeded"},
            )

        client = _client(handler)
        with pytest.raises(TranslationServiceError) as exc_info:
            await client.translate("hello", "en", "ko")
        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Rate exceeded"

    @pytest.mark.asyncio
    async def test_error_without_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="")

        client = _client(handler)
        with pytest.raises(TranslationServiceError) as exc_info:
            await client.translate("hello", "en", "ko")
        assert exc_info.value.status_code == 503
        assert str(exc_info.value) == "HTTP 503"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(TranslationServiceError) as exc_info:
            await client.translate("hello", "en", "ko")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"Other": "value"})

        client = _client(handler)
        with pytest.raises(TranslationServiceError):
            await client.translate("hello", "en", "ko")
