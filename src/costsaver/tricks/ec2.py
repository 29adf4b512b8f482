"""Trick stopping running EC2 instances."""

from functools import partial
from typing import Any

from botocore.exceptions import ClientError
from pydantic import BaseModel, TypeAdapter

from costsaver.aws.client import AwsContext, error_code
from costsaver.aws.tags import tags_to_dict, to_ec2_filters
from costsaver.core.errors import DiscoveryError, StateMismatchError
from costsaver.core.tasks import TaskList, TaskNode
from costsaver.core.trick import TagFilter

RUNNING = "running"
STOPPED = "stopped"


class Ec2InstanceState(BaseModel):
    instance_id: str
    name: str = ""
    state: str


ShutdownEc2InstancesState = list[Ec2InstanceState]

_state_adapter = TypeAdapter(ShutdownEc2InstancesState)


class ShutdownEc2InstancesTrick:
    """Stops running EC2 instances and starts them again on restore."""

    def __init__(self, aws: AwsContext) -> None:
        self.ec2 = aws.client("ec2")

    def machine_name(self) -> str:
        return "shutdown-ec2-instances"

    def display_name(self) -> str:
        return "Shutdown EC2 Instances"

    def can_be_concurrent(self) -> bool:
        return True

    def dump_state(self, state: ShutdownEc2InstancesState) -> Any:
        return _state_adapter.dump_python(state, mode="json")

    def load_state(self, data: Any) -> ShutdownEc2InstancesState:
        return _state_adapter.validate_python(data)

    async def conserve(
        self, tasks: TaskList, dry_run: bool, tags: list[TagFilter]
    ) -> ShutdownEc2InstancesState:
        filters = [{"Name": "instance-state-name", "Values": [RUNNING]}, *to_ec2_filters(tags)]
        reservations = await self.ec2.paginate(
            "describe_instances", "Reservations", Filters=filters
        )

        state: ShutdownEc2InstancesState = []
        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                if "InstanceId" not in instance or "State" not in instance:
                    raise DiscoveryError("Unexpected error: EC2 instance is missing id or state")
                instance_state = Ec2InstanceState(
                    instance_id=instance["InstanceId"],
                    name=tags_to_dict(instance.get("Tags")).get("Name", ""),
                    state=instance["State"]["Name"],
                )
                state.append(instance_state)
                tasks.add(self._title(instance_state), partial(self._conserve, instance_state, dry_run))

        return state

    async def restore(
        self, tasks: TaskList, dry_run: bool, state: ShutdownEc2InstancesState
    ) -> None:
        for instance in state:
            tasks.add(self._title(instance), partial(self._restore, instance, dry_run))

    async def _conserve(self, instance: Ec2InstanceState, dry_run: bool, task: TaskNode) -> None:
        if dry_run:
            task.skip("Skipped due to dry-run")
        elif instance.state != RUNNING:
            task.skip(f"Skipped, instance is {instance.state}")
        else:
            task.output = "Stopping instance..."
            await self.ec2.mutate("stop_instances", InstanceIds=[instance.instance_id])
            task.output = "Waiting for instance to stop..."
            await self.ec2.wait_until(
                partial(self._has_state, instance.instance_id, STOPPED),
                f"instance {instance.instance_id} to stop",
            )
            task.output = "Stopped instance"

    async def _restore(self, instance: Ec2InstanceState, dry_run: bool, task: TaskNode) -> None:
        if dry_run:
            task.skip("Skipped due to dry-run")
            return
        if instance.state != RUNNING:
            task.skip(f"Skipped, instance was previously {instance.state}")
            return

        try:
            current = await self._current_state(instance.instance_id)
        except StateMismatchError as e:
            task.skip(str(e), warning=True)
            return

        if current == RUNNING:
            task.skip("Skipped, instance is already running")
            return

        task.output = "Starting instance..."
        await self.ec2.mutate("start_instances", InstanceIds=[instance.instance_id])
        task.output = "Waiting for instance to start..."
        await self.ec2.wait_until(
            partial(self._has_state, instance.instance_id, RUNNING),
            f"instance {instance.instance_id} to start",
        )
        task.output = "Started instance"

    async def _has_state(self, instance_id: str, expected: str) -> bool:
        return await self._current_state(instance_id) == expected

    async def _current_state(self, instance_id: str) -> str:
        try:
            response = await self.ec2.query("describe_instances", InstanceIds=[instance_id])
        except DiscoveryError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and error_code(cause) == "InvalidInstanceID.NotFound":
                raise StateMismatchError(f"Instance {instance_id} no longer exists") from e
            raise

        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                state = instance["State"]["Name"]
                if state == "terminated":
                    raise StateMismatchError(f"Instance {instance_id} has been terminated")
                return state
        raise StateMismatchError(f"Instance {instance_id} no longer exists")

    @staticmethod
    def _title(instance: Ec2InstanceState) -> str:
        if instance.name:
            return f"{instance.instance_id} ({instance.name})"
        return instance.instance_id
