"""Unit tests for the EC2 instances trick."""

from typing import Any

import pytest
from fakes import FakeEc2, FakeSession, client_error

from costsaver.aws.client import AwsContext
from costsaver.config.models import CostSaverConfig, WaiterConfig
from costsaver.core.errors import DiscoveryError
from costsaver.core.tasks import TaskList, TaskStatus
from costsaver.core.trick import TagFilter
from costsaver.tricks.ec2 import ShutdownEc2InstancesTrick

FAST = CostSaverConfig(waiter=WaiterConfig(delay=0, max_delay=0, timeout=1))


@pytest.fixture
def ec2() -> FakeEc2:
    return FakeEc2()


@pytest.fixture
def trick(ec2: FakeEc2) -> ShutdownEc2InstancesTrick:
    return ShutdownEc2InstancesTrick(AwsContext(FAST, session=FakeSession(ec2=ec2)))


async def run_conserve(
    trick: ShutdownEc2InstancesTrick, dry_run: bool = False, tags: list[TagFilter] | None = None
) -> tuple[TaskList, Any, bool]:
    tasks = TaskList(concurrent=True)
    state = await trick.conserve(tasks, dry_run, tags or [])
    return tasks, trick.dump_state(state), await tasks.run()


async def run_restore(
    trick: ShutdownEc2InstancesTrick, data: Any, dry_run: bool = False
) -> tuple[TaskList, bool]:
    tasks = TaskList(concurrent=True)
    await trick.restore(tasks, dry_run, trick.load_state(data))
    return tasks, await tasks.run()


class TestShutdownEc2InstancesTrick:
    """Tests for ShutdownEc2InstancesTrick."""

    def test_identity(self, trick: ShutdownEc2InstancesTrick) -> None:
        """Test the trick's names."""
        assert trick.machine_name() == "shutdown-ec2-instances"
        assert trick.display_name() == "Shutdown EC2 Instances"

    @pytest.mark.asyncio
    async def test_conserve_and_restore(
        self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2
    ) -> None:
        """Test stopping running instances and starting them again."""
        ec2.add_instance("i-1", "running", tags={"Name": "web"})
        ec2.add_instance("i-2", "stopped")

        tasks, data, ok = await run_conserve(trick)

        assert ok
        assert [t.title for t in tasks] == ["i-1 (web)"]
        assert data == [{"instance_id": "i-1", "name": "web", "state": "running"}]
        assert ec2.state("i-1") == "stopped"

        _, ok = await run_restore(trick, data)

        assert ok
        assert ec2.state("i-1") == "running"
        assert ec2.state("i-2") == "stopped"

    @pytest.mark.asyncio
    async def test_dry_run(self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2) -> None:
        """Test that a dry run changes nothing."""
        ec2.add_instance("i-1", "running")

        tasks, data, ok = await run_conserve(trick, dry_run=True)

        assert ok
        assert ec2.mutations == []
        assert ec2.state("i-1") == "running"
        assert tasks.tasks[0].status is TaskStatus.SKIPPED
        assert len(data) == 1

    @pytest.mark.asyncio
    async def test_tag_filters_sent_to_api(
        self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2
    ) -> None:
        """Test that tag filters select instances server side."""
        ec2.add_instance("i-dev", "running", tags={"env": "dev"})
        ec2.add_instance("i-prod", "running", tags={"env": "prod"})

        _, data, _ = await run_conserve(trick, tags=[TagFilter(key="env", values=["dev"])])

        assert [i["instance_id"] for i in data] == ["i-dev"]
        assert ec2.state("i-prod") == "running"

    @pytest.mark.asyncio
    async def test_restore_already_running(
        self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2
    ) -> None:
        """Test that an instance started by hand is left alone."""
        ec2.add_instance("i-1", "running")
        _, data, _ = await run_conserve(trick)
        ec2.start_instances(InstanceIds=["i-1"])
        before = len(ec2.mutations)

        tasks, ok = await run_restore(trick, data)

        assert ok
        assert len(ec2.mutations) == before
        assert tasks.tasks[0].output == "Skipped, instance is already running"

    @pytest.mark.asyncio
    async def test_restore_missing_instance(
        self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2
    ) -> None:
        """Test that an instance gone since conserve is a warning skip."""
        ec2.add_instance("i-1", "running")
        _, data, _ = await run_conserve(trick)
        del ec2.instances["i-1"]

        tasks, ok = await run_restore(trick, data)

        assert ok
        assert tasks.tasks[0].warning is True
        assert "no longer exists" in tasks.tasks[0].output

    @pytest.mark.asyncio
    async def test_restore_terminated_instance(
        self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2
    ) -> None:
        """Test that a terminated instance is a warning skip."""
        ec2.add_instance("i-1", "running")
        _, data, _ = await run_conserve(trick)
        ec2.instances["i-1"]["State"] = {"Name": "terminated"}

        tasks, ok = await run_restore(trick, data)

        assert ok
        assert tasks.tasks[0].warning is True
        assert "terminated" in tasks.tasks[0].output

    @pytest.mark.asyncio
    async def test_stop_failure(self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2) -> None:
        """Test that a rejected stop fails only the resource task."""
        ec2.add_instance("i-1", "running")
        ec2.fail["stop_instances"] = client_error("UnsupportedOperation")

        tasks, data, ok = await run_conserve(trick)

        assert not ok
        assert tasks.tasks[0].status is TaskStatus.FAILED
        assert "UnsupportedOperation" in tasks.tasks[0].error
        assert len(data) == 1

    @pytest.mark.asyncio
    async def test_discovery_failure(
        self, trick: ShutdownEc2InstancesTrick, ec2: FakeEc2
    ) -> None:
        """Test that failing to describe instances raises DiscoveryError."""
        ec2.fail["describe_instances"] = client_error("UnauthorizedOperation")
        with pytest.raises(DiscoveryError):
            await trick.conserve(TaskList(), False, [])
