import json
import logging

import httpx

from domain.errors import TranslationServiceError
from domain.signing import AwsCredentials, sign_headers

logger = logging.getLogger(__name__)

TRANSLATE_SERVICE = "translate"
TRANSLATE_TARGET = "AWSShineFrontendService_20170701.TranslateText"
CONTENT_TYPE = "application/x-amz-json-1.1"


class AwsTranslateClient:
    def __init__(
        self,
        region: str,
        credentials: AwsCredentials,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._region = region
        self._credentials = credentials
        self._host = f"translate.{region}.amazonaws.com"
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        body = json.dumps(
            {
                "Text": text,
                "SourceLanguageCode": source_language,
                "TargetLanguageCode": target_language,
            }
        ).encode("utf-8")
        headers = sign_headers(
            "POST",
            self._host,
            "/",
            TRANSLATE_SERVICE,
            self._region,
            self._credentials,
            body=body,
            headers={"Content-Type": CONTENT_TYPE, "X-Amz-Target": TRANSLATE_TARGET},
        )

        try:
            response = await self._client.post(f"https://{self._host}/", content=body, headers=headers)
            response.raise_for_status()
            return response.json()["TranslatedText"]
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response)
            logger.error("Translate HTTP error: %s %s", exc.response.status_code, message)
            raise TranslationServiceError(message, exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise TranslationServiceError(f"Translate request failed: {exc}") from exc
        except (ValueError, KeyError) as exc:
            raise TranslationServiceError(f"Unexpected Translate response: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if not isinstance(data, dict):
        return f"HTTP {response.status_code}"
    return data.get("message") or data.get("Message") or f"HTTP {response.status_code}"
