"""AWS client access for tricks.

boto3 is blocking, so every call runs in a worker thread via
``asyncio.to_thread``. All calls made through one ``AwsContext`` share a
semaphore that caps how many provider requests are in flight at once.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import cached_property
from typing import Any, TypeVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    wait_exponential,
)

from costsaver.config.models import CostSaverConfig, WaiterConfig
from costsaver.core.errors import DiscoveryError, MutationError, StabilityTimeoutError
from costsaver.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def gather_all(*aws: Awaitable[T]) -> list[T]:
    """Await every awaitable, then raise the first error if any failed.

    Unlike a plain gather, no sibling is left running unobserved once one of
    them has failed.

    Args:
        *aws: Awaitables to run concurrently

    Returns:
        Results in argument order
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


def describe_client_error(error: Exception) -> str:
    """Build a short message from a botocore error.

    Args:
        error: Error raised by a boto3 call

    Returns:
        "Code: message" for client errors, str(error) otherwise
    """
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "Unknown")
        message = error.response.get("Error", {}).get("Message", str(error))
        return f"{code}: {message}"
    return str(error)


def error_code(error: ClientError) -> str:
    """Get the AWS error code of a client error."""
    return error.response.get("Error", {}).get("Code", "Unknown")


class AwsClient:
    """Async wrapper around one boto3 service client."""

    def __init__(
        self,
        service_name: str,
        session: Any,
        limiter: asyncio.Semaphore | None,
        waiter: WaiterConfig,
    ) -> None:
        """Initialize the AwsClient.

        Args:
            service_name: AWS service name (e.g., 'ecs')
            session: boto3 Session the client is created from
            limiter: Semaphore shared by all clients of a context, or None
            waiter: Polling bounds for wait_until
        """
        self.service_name = service_name
        self._session = session
        self._limiter = limiter
        self._waiter = waiter

    @cached_property
    def client(self) -> Any:
        """boto3 client, created on first use."""
        return self._session.client(self.service_name)

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        fn = getattr(self.client, method)
        if self._limiter is None:
            return await asyncio.to_thread(fn, **params)
        async with self._limiter:
            return await asyncio.to_thread(fn, **params)

    async def query(self, method: str, **params: Any) -> dict[str, Any]:
        """Call a read-only API method.

        Raises:
            DiscoveryError: If the call fails
        """
        logger.debug("AWS query", service=self.service_name, method=method)
        try:
            return await self._call(method, params)
        except (ClientError, BotoCoreError) as e:
            raise DiscoveryError(
                f"{self.service_name}.{method} failed: {describe_client_error(e)}"
            ) from e

    async def paginate(self, method: str, result_key: str, **params: Any) -> list[Any]:
        """Call a paginated read-only API method and collect every page.

        Args:
            method: Paginated method name (e.g., 'list_clusters')
            result_key: Key holding the items on each page
            **params: Method parameters

        Returns:
            Items from all pages

        Raises:
            DiscoveryError: If any page fails
        """
        logger.debug("AWS paginate", service=self.service_name, method=method)

        client = self.client

        def collect() -> list[Any]:
            items: list[Any] = []
            for page in client.get_paginator(method).paginate(**params):
                items.extend(page.get(result_key, []))
            return items

        try:
            if self._limiter is None:
                return await asyncio.to_thread(collect)
            async with self._limiter:
                return await asyncio.to_thread(collect)
        except (ClientError, BotoCoreError) as e:
            raise DiscoveryError(
                f"{self.service_name}.{method} failed: {describe_client_error(e)}"
            ) from e

    async def mutate(self, method: str, **params: Any) -> dict[str, Any]:
        """Call an API method that changes a resource.

        Raises:
            MutationError: If the provider rejects the call
        """
        logger.debug("AWS mutate", service=self.service_name, method=method)
        try:
            return await self._call(method, params)
        except (ClientError, BotoCoreError) as e:
            raise MutationError(
                f"{self.service_name}.{method} failed: {describe_client_error(e)}"
            ) from e

    async def wait_until(self, check: Callable[[], Awaitable[bool]], description: str) -> None:
        """Poll until a check reports the resource stable.

        Errors raised by the check are not retried.

        Args:
            check: Coroutine function returning True once stable
            description: What is being waited for, used in errors

        Raises:
            StabilityTimeoutError: If the check is still False after the timeout
        """
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda stable: not stable),
            wait=wait_exponential(
                multiplier=self._waiter.delay,
                min=self._waiter.delay,
                max=self._waiter.max_delay,
            ),
            stop=stop_after_delay(self._waiter.timeout),
        )
        try:
            await retrying(check)
        except RetryError as e:
            raise StabilityTimeoutError(description, self._waiter.timeout) from e


class AwsContext:
    """Shared AWS session, client cache and request limiter."""

    def __init__(self, config: CostSaverConfig, session: Any = None) -> None:
        """Initialize the AwsContext.

        Args:
            config: cost-saver configuration
            session: boto3 Session to use; built from config.aws if omitted
        """
        self.config = config
        if session is None:
            session = boto3.Session(
                profile_name=config.aws.profile or None,
                region_name=config.aws.region or None,
            )
        self.session = session
        self._limiter = (
            asyncio.Semaphore(config.max_concurrency) if config.max_concurrency > 0 else None
        )
        self._clients: dict[str, AwsClient] = {}

    def client(self, service_name: str) -> AwsClient:
        """Get the client for a service, creating it on first use.

        Args:
            service_name: AWS service name (e.g., 'ecs')

        Returns:
            Shared AwsClient for the service
        """
        if service_name not in self._clients:
            self._clients[service_name] = AwsClient(
                service_name, self.session, self._limiter, self.config.waiter
            )
        return self._clients[service_name]
