"""HTTP request executor: the engine's only outbound effect."""

from typing import Any, Dict

import httpx

from ..core.error_recovery import call_with_retry
from ..core.exceptions import HttpRequestError
from ..core.logging import get_logger
from ..models.core import HttpRequestConfig, NodeType, StepResult
from .base import StepContext, StepExecutor

logger = get_logger(__name__)


class HttpRequestExecutor(StepExecutor):
    """
    Issues the configured request and succeeds with the response payload.

    Connection errors, timeouts and 5xx responses are retried with backoff
    according to the engine's HTTP retry settings; 4xx responses fail at once.
    """

    node_type = NodeType.HTTP_REQUEST.value
    config_model = HttpRequestConfig

    async def run(self, config: HttpRequestConfig, inputs, context: StepContext) -> StepResult:
        timeout = config.timeout / 1000 if config.timeout else context.settings.http_timeout
        attempts = 0

        async def send_with_retry(client: httpx.AsyncClient) -> httpx.Response:
            async def send() -> httpx.Response:
                nonlocal attempts
                attempts += 1
                return await self._send(client, config, timeout, context)

            return await call_with_retry(
                send, context.settings.http_retry_config(), operation=f"http-request {context.node_id}"
            )

        if context.http_client is None:
            async with httpx.AsyncClient() as client:
                response = await send_with_retry(client)
        else:
            response = await send_with_retry(context.http_client)

        return StepResult(
            output={
                "status": response.status_code,
                "status_text": response.reason_phrase,
                "headers": dict(response.headers),
                "data": self._decode_body(response),
            },
            details={
                "request": {"method": config.method.value, "url": config.url, "headers": dict(config.headers)},
                "attempts": attempts,
            },
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        config: HttpRequestConfig,
        timeout: float,
        context: StepContext,
    ) -> httpx.Response:
        url = config.url
        try:
            response = await client.request(
                config.method.value,
                url,
                headers=config.headers or None,
                content=config.body,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise HttpRequestError(
                f"Request to {url} timed out after {timeout}s",
                url=url, node_id=context.node_id, node_type=self.node_type, recoverable=True,
            ) from e
        except httpx.TransportError as e:
            raise HttpRequestError(
                f"Connection error for {url}: {e}",
                url=url, node_id=context.node_id, node_type=self.node_type, recoverable=True,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise HttpRequestError(
                f"Request to {url} failed: {e}",
                url=url, node_id=context.node_id, node_type=self.node_type,
            ) from e

        if response.status_code >= 400:
            raise HttpRequestError(
                f"HTTP {response.status_code} {response.reason_phrase} from {url}",
                url=url,
                status_code=response.status_code,
                node_id=context.node_id,
                node_type=self.node_type,
                recoverable=response.status_code >= 500,
            )

        logger.debug(f"{config.method.value} {url} -> {response.status_code}")
        return response

    @staticmethod
    def _decode_body(response: httpx.Response) -> Any:
        if "json" in response.headers.get("content-type", ""):
            try:
                return response.json()
            except ValueError:
                pass
        return response.text
