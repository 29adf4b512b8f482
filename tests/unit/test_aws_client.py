"""Unit tests for the AWS client wrapper and tag helpers."""

import asyncio
from typing import Any
from unittest.mock import MagicMock, Mock

import pytest
from botocore.exceptions import ClientError, NoRegionError

from costsaver.aws.client import AwsClient, AwsContext, describe_client_error, gather_all
from costsaver.aws.tags import matches_tags, tags_to_dict, to_ec2_filters
from costsaver.config.models import CostSaverConfig, WaiterConfig
from costsaver.core.errors import DiscoveryError, MutationError, StabilityTimeoutError
from costsaver.core.trick import TagFilter

FAST = WaiterConfig(delay=0, max_delay=0, timeout=1)


def client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "nope"}}, "Op")


def make_client(boto_client: Any, limiter: asyncio.Semaphore | None = None, waiter=FAST):
    session = Mock()
    session.client.return_value = boto_client
    return AwsClient("ecs", session, limiter, waiter)


class TestDescribeClientError:
    """Tests for describe_client_error."""

    def test_client_error(self) -> None:
        """Test formatting a ClientError."""
        assert describe_client_error(client_error("AccessDenied")) == "AccessDenied: nope"

    def test_other_error(self) -> None:
        """Test formatting any other error."""
        assert describe_client_error(RuntimeError("x")) == "x"


class TestAwsClient:
    """Tests for AwsClient."""

    @pytest.mark.asyncio
    async def test_query(self) -> None:
        """Test that query passes parameters and returns the response."""
        boto = MagicMock()
        boto.describe_services.return_value = {"services": []}
        client = make_client(boto)

        assert await client.query("describe_services", cluster="c") == {"services": []}
        boto.describe_services.assert_called_once_with(cluster="c")

    @pytest.mark.asyncio
    async def test_query_error_is_discovery_error(self) -> None:
        """Test that query failures become DiscoveryError."""
        boto = MagicMock()
        boto.list_clusters.side_effect = client_error("AccessDenied")
        client = make_client(boto)

        with pytest.raises(DiscoveryError, match="ecs.list_clusters failed: AccessDenied") as exc:
            await client.query("list_clusters")
        assert isinstance(exc.value.__cause__, ClientError)

    @pytest.mark.asyncio
    async def test_botocore_error_is_wrapped(self) -> None:
        """Test that non-client botocore errors are wrapped too."""
        boto = MagicMock()
        boto.list_clusters.side_effect = NoRegionError()
        with pytest.raises(DiscoveryError):
            await make_client(boto).query("list_clusters")

    @pytest.mark.asyncio
    async def test_mutate_error_is_mutation_error(self) -> None:
        """Test that mutate failures become MutationError."""
        boto = MagicMock()
        boto.update_service.side_effect = client_error("InvalidParameterException")
        client = make_client(boto)

        with pytest.raises(MutationError, match="InvalidParameterException"):
            await client.mutate("update_service", desiredCount=0)

    @pytest.mark.asyncio
    async def test_paginate_collects_pages(self) -> None:
        """Test that paginate joins items from every page."""
        boto = MagicMock()
        boto.get_paginator.return_value.paginate.return_value = [
            {"clusterArns": ["a", "b"]},
            {"clusterArns": ["c"]},
            {},
        ]
        client = make_client(boto)

        assert await client.paginate("list_clusters", "clusterArns", maxResults=2) == ["a", "b", "c"]
        boto.get_paginator.assert_called_once_with("list_clusters")
        boto.get_paginator.return_value.paginate.assert_called_once_with(maxResults=2)

    @pytest.mark.asyncio
    async def test_paginate_error(self) -> None:
        """Test that pagination failures become DiscoveryError."""
        boto = MagicMock()
        boto.get_paginator.return_value.paginate.side_effect = client_error("Throttling")
        with pytest.raises(DiscoveryError, match="Throttling"):
            await make_client(boto).paginate("list_clusters", "clusterArns")

    def test_client_is_created_lazily(self) -> None:
        """Test that the boto3 client is only created on first use."""
        session = Mock()
        client = AwsClient("rds", session, None, FAST)
        session.client.assert_not_called()
        assert client.client is session.client.return_value
        assert client.client is session.client.return_value
        session.client.assert_called_once_with("rds")

    @pytest.mark.asyncio
    async def test_limiter_caps_in_flight_calls(self) -> None:
        """Test that no more calls than the limit run at the same time."""
        import threading
        import time

        lock = threading.Lock()
        in_flight = 0
        peak = 0

        def slow_call(**params: Any) -> dict[str, Any]:
            nonlocal in_flight, peak
            with lock:
                in_flight += 1
                peak = max(peak, in_flight)
            time.sleep(0.02)
            with lock:
                in_flight -= 1
            return {}

        boto = MagicMock()
        boto.describe_services.side_effect = slow_call
        client = make_client(boto, limiter=asyncio.Semaphore(2))

        await asyncio.gather(*(client.query("describe_services") for _ in range(6)))

        assert boto.describe_services.call_count == 6
        assert peak <= 2


class TestWaitUntil:
    """Tests for AwsClient.wait_until."""

    @pytest.mark.asyncio
    async def test_returns_when_stable(self) -> None:
        """Test that polling stops as soon as the check succeeds."""
        results = iter([False, False, True])
        calls = 0

        async def check() -> bool:
            nonlocal calls
            calls += 1
            return next(results)

        await make_client(MagicMock()).wait_until(check, "service to settle")
        assert calls == 3

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Test that exceeding the bound raises StabilityTimeoutError."""

        async def never() -> bool:
            return False

        client = make_client(MagicMock(), waiter=WaiterConfig(delay=0, max_delay=0, timeout=0))
        with pytest.raises(StabilityTimeoutError, match="waiting for service to settle") as exc:
            await client.wait_until(never, "service to settle")
        assert isinstance(exc.value, MutationError)

    @pytest.mark.asyncio
    async def test_check_errors_propagate(self) -> None:
        """Test that errors raised by the check are not retried."""
        calls = 0

        async def broken() -> bool:
            nonlocal calls
            calls += 1
            raise DiscoveryError("describe failed")

        with pytest.raises(DiscoveryError, match="describe failed"):
            await make_client(MagicMock()).wait_until(broken, "anything")
        assert calls == 1


class TestGatherAll:
    """Tests for gather_all."""

    @pytest.mark.asyncio
    async def test_results_in_order(self) -> None:
        """Test that results keep the order of the awaitables."""

        async def value(v: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return v

        assert await gather_all(value(1, 0.02), value(2, 0), value(3, 0.01)) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_error_raised_after_siblings_finish(self) -> None:
        """Test that the first error is raised once every sibling has completed."""
        finished = []

        async def fail() -> None:
            raise DiscoveryError("list failed")

        async def slow() -> None:
            await asyncio.sleep(0.02)
            finished.append("slow")

        with pytest.raises(DiscoveryError, match="list failed"):
            await gather_all(fail(), slow())
        assert finished == ["slow"]


class TestAwsContext:
    """Tests for AwsContext."""

    def test_clients_are_cached(self) -> None:
        """Test that the same AwsClient is returned per service."""
        aws = AwsContext(CostSaverConfig(), session=Mock())
        assert aws.client("ecs") is aws.client("ecs")
        assert aws.client("ecs") is not aws.client("rds")

    def test_limiter_disabled(self) -> None:
        """Test that a zero cap disables the limiter."""
        aws = AwsContext(CostSaverConfig(max_concurrency=0), session=Mock())
        assert aws.client("ecs")._limiter is None

    def test_limiter_shared(self) -> None:
        """Test that all clients share one limiter."""
        aws = AwsContext(CostSaverConfig(max_concurrency=3), session=Mock())
        assert aws.client("ecs")._limiter is aws.client("rds")._limiter
        assert aws.client("ecs")._limiter is not None


class TestTags:
    """Tests for tag helpers."""

    def test_tags_to_dict(self) -> None:
        """Test converting both AWS tag list styles."""
        assert tags_to_dict([{"Key": "env", "Value": "dev"}]) == {"env": "dev"}
        assert tags_to_dict([{"key": "team", "value": "core"}]) == {"team": "core"}
        assert tags_to_dict(None) == {}

    def test_matches_tags(self) -> None:
        """Test that every filter must match."""
        tags = {"env": "dev", "team": "core"}
        assert matches_tags(tags, [])
        assert matches_tags(tags, [TagFilter(key="env", values=["dev", "qa"])])
        assert not matches_tags(tags, [TagFilter(key="env", values=["prod"])])
        assert not matches_tags(
            tags,
            [TagFilter(key="env", values=["dev"]), TagFilter(key="owner", values=["me"])],
        )

    def test_to_ec2_filters(self) -> None:
        """Test building EC2 describe filters."""
        assert to_ec2_filters([TagFilter(key="env", values=["dev"])]) == [
            {"Name": "tag:env", "Values": ["dev"]}
        ]
