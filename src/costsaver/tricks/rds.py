"""Trick stopping available RDS database instances."""

from functools import partial
from typing import Any

from botocore.exceptions import ClientError
from pydantic import BaseModel, TypeAdapter

from costsaver.aws.client import AwsContext, error_code
from costsaver.aws.tags import matches_tags, tags_to_dict
from costsaver.core.errors import DiscoveryError, StateMismatchError
from costsaver.core.tasks import TaskList, TaskNode
from costsaver.core.trick import TagFilter

AVAILABLE = "available"
STOPPED = "stopped"


class RdsInstanceState(BaseModel):
    identifier: str
    status: str
    cluster: str = ""


StopRdsDatabaseInstancesState = list[RdsInstanceState]

_state_adapter = TypeAdapter(StopRdsDatabaseInstancesState)


class StopRdsDatabaseInstancesTrick:
    """Stops RDS database instances that are available.

    Instances that belong to an Aurora cluster cannot be stopped on their own;
    they are recorded and skipped.
    """

    def __init__(self, aws: AwsContext) -> None:
        self.rds = aws.client("rds")

    def machine_name(self) -> str:
        return "stop-rds-database-instances"

    def display_name(self) -> str:
        return "Stop RDS Database Instances"

    def can_be_concurrent(self) -> bool:
        return True

    def dump_state(self, state: StopRdsDatabaseInstancesState) -> Any:
        return _state_adapter.dump_python(state, mode="json")

    def load_state(self, data: Any) -> StopRdsDatabaseInstancesState:
        return _state_adapter.validate_python(data)

    async def conserve(
        self, tasks: TaskList, dry_run: bool, tags: list[TagFilter]
    ) -> StopRdsDatabaseInstancesState:
        instances = await self.rds.paginate("describe_db_instances", "DBInstances")

        state: StopRdsDatabaseInstancesState = []
        for instance in instances:
            if "DBInstanceIdentifier" not in instance or "DBInstanceStatus" not in instance:
                raise DiscoveryError("Unexpected error: RDS instance is missing identifier or status")
            if not matches_tags(tags_to_dict(instance.get("TagList")), tags):
                continue

            instance_state = RdsInstanceState(
                identifier=instance["DBInstanceIdentifier"],
                status=instance["DBInstanceStatus"],
                cluster=instance.get("DBClusterIdentifier") or "",
            )
            state.append(instance_state)
            tasks.add(instance_state.identifier, partial(self._conserve, instance_state, dry_run))

        return state

    async def restore(
        self, tasks: TaskList, dry_run: bool, state: StopRdsDatabaseInstancesState
    ) -> None:
        for instance in state:
            tasks.add(instance.identifier, partial(self._restore, instance, dry_run))

    async def _conserve(self, instance: RdsInstanceState, dry_run: bool, task: TaskNode) -> None:
        if instance.cluster:
            task.skip(f"Skipped, member of Aurora cluster {instance.cluster}")
        elif dry_run:
            task.skip("Skipped due to dry-run")
        elif instance.status != AVAILABLE:
            task.skip(f"Skipped, database is {instance.status}")
        else:
            task.output = "Stopping database..."
            await self.rds.mutate("stop_db_instance", DBInstanceIdentifier=instance.identifier)
            task.output = "Waiting for database to stop..."
            await self.rds.wait_until(
                partial(self._has_status, instance.identifier, STOPPED),
                f"database {instance.identifier} to stop",
            )
            task.output = "Stopped database"

    async def _restore(self, instance: RdsInstanceState, dry_run: bool, task: TaskNode) -> None:
        if instance.cluster:
            task.skip(f"Skipped, member of Aurora cluster {instance.cluster}")
            return
        if dry_run:
            task.skip("Skipped due to dry-run")
            return
        if instance.status != AVAILABLE:
            task.skip(f"Skipped, database was previously {instance.status}")
            return

        try:
            current = await self._current_status(instance.identifier)
        except StateMismatchError as e:
            task.skip(str(e), warning=True)
            return

        if current == AVAILABLE:
            task.skip("Skipped, database is already available")
            return

        task.output = "Starting database..."
        await self.rds.mutate("start_db_instance", DBInstanceIdentifier=instance.identifier)
        task.output = "Waiting for database to become available..."
        await self.rds.wait_until(
            partial(self._has_status, instance.identifier, AVAILABLE),
            f"database {instance.identifier} to become available",
        )
        task.output = "Started database"

    async def _has_status(self, identifier: str, expected: str) -> bool:
        return await self._current_status(identifier) == expected

    async def _current_status(self, identifier: str) -> str:
        try:
            response = await self.rds.query(
                "describe_db_instances", DBInstanceIdentifier=identifier
            )
        except DiscoveryError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and error_code(cause) == "DBInstanceNotFound":
                raise StateMismatchError(f"Database {identifier} no longer exists") from e
            raise

        instances = response.get("DBInstances", [])
        if not instances:
            raise StateMismatchError(f"Database {identifier} no longer exists")
        return instances[0]["DBInstanceStatus"]
