"""HTTP transport for the chat completions API."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import requests
from loguru import logger
from pydantic import ValidationError

from .config import DEFAULT_API_BASE, Settings
from .errors import TransportError
from .schema import ChatCompletion, ChatRequest, ModelInfo

CHAT_ENDPOINT = "chat/completions"
MODELS_ENDPOINT = "models"


class ChatClient:
    """Thin client over ``requests`` with bearer authentication.

    No timeout is applied unless one is configured; a streamed read blocks
    until the server sends the next line or closes the connection.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key.strip()
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> ChatClient:
        return cls(
            settings.resolved_api_key,
            api_base=settings.api_base,
            timeout=settings.timeout_seconds,
        )

    def url(self, endpoint: str) -> str:
        return f"{self._api_base}/{endpoint.lstrip('/')}"

    def close(self) -> None:
        self._session.close()

    def chat_lines(self, request: ChatRequest) -> Iterator[str]:
        """Send a streaming completion request and yield the raw response lines."""
        payload = request.model_copy(update={"stream": True}).to_payload()
        response = self._request("POST", CHAT_ENDPOINT, payload, stream=True)
        # Event streams often omit a charset, which requests would read as latin-1.
        response.encoding = "utf-8"
        with response:
            try:
                for line in response.iter_lines(decode_unicode=True):
                    yield line or ""
            except requests.RequestException as exc:
                raise TransportError(f"stream interrupted: {exc}") from exc

    def complete(self, request: ChatRequest) -> ChatCompletion:
        """Send a non-streaming completion request."""
        payload = request.model_copy(update={"stream": False}).to_payload()
        data = self._json("POST", CHAT_ENDPOINT, payload)
        try:
            return ChatCompletion.model_validate(data)
        except ValidationError as exc:
            raise TransportError(f"unexpected completion response: {exc}") from exc

    def list_models(self) -> list[ModelInfo]:
        data = self._json("GET", MODELS_ENDPOINT, None)
        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise TransportError("unexpected models response", body=str(data))
        return [ModelInfo.model_validate(entry) for entry in entries]

    def _json(self, method: str, endpoint: str, payload: dict[str, Any] | None) -> Any:
        response = self._request(method, endpoint, payload, stream=False)
        with response:
            try:
                return response.json()
            except ValueError as exc:
                raise TransportError("response is not JSON", status=response.status_code, body=response.text) from exc

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: dict[str, Any] | None,
        *,
        stream: bool,
    ) -> requests.Response:
        url = self.url(endpoint)
        headers = {"Authorization": f"Bearer {self._api_key}"}
        logger.debug("http.request method={} url={} stream={}", method, url, stream)
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                headers=headers,
                stream=stream,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.status_code != 200:
            body = response.text
            response.close()
            logger.warning("http.error status={} url={} body={}", response.status_code, url, body[:500])
            raise TransportError(
                f"bad status: {response.status_code} {response.reason}",
                status=response.status_code,
                body=body,
            )
        return response
