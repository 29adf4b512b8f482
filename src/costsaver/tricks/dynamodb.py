"""Trick decreasing provisioned read and write capacity of DynamoDB tables."""

from functools import partial
from typing import Any

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, TypeAdapter

from costsaver.aws.client import AwsContext, error_code, gather_all
from costsaver.aws.tags import matches_tags, tags_to_dict
from costsaver.core.errors import DiscoveryError, StateMismatchError
from costsaver.core.tasks import TaskList, TaskNode
from costsaver.core.trick import TagFilter

PROVISIONED = "PROVISIONED"
ACTIVE = "ACTIVE"
# Lowest capacity DynamoDB accepts for a provisioned table or index
MIN_CAPACITY = 1


class ThroughputState(BaseModel):
    read: int
    write: int

    def to_api(self) -> dict[str, int]:
        return {"ReadCapacityUnits": self.read, "WriteCapacityUnits": self.write}


MINIMUM = ThroughputState(read=MIN_CAPACITY, write=MIN_CAPACITY)


class DynamoDbIndexState(BaseModel):
    name: str
    throughput: ThroughputState


class DynamoDbTableState(BaseModel):
    """Billing mode and capacity of a table and its global indexes before conserve."""

    name: str
    billing_mode: str = PROVISIONED
    throughput: ThroughputState | None = None
    indexes: list[DynamoDbIndexState] = Field(default_factory=list)


DecreaseDynamoDbState = list[DynamoDbTableState]

_state_adapter = TypeAdapter(DecreaseDynamoDbState)


def _throughput(data: dict[str, Any] | None) -> ThroughputState | None:
    if not data or data.get("ReadCapacityUnits") is None:
        return None
    return ThroughputState(read=data["ReadCapacityUnits"], write=data["WriteCapacityUnits"])


class DecreaseDynamoDbProvisionedRcuWcuTrick:
    """Sets provisioned tables and their global indexes to the minimum capacity.

    On-demand tables have no provisioned capacity; they are recorded and
    skipped.
    """

    def __init__(self, aws: AwsContext) -> None:
        self.dynamodb = aws.client("dynamodb")

    def machine_name(self) -> str:
        return "decrease-dynamodb-provisioned-rcu-wcu"

    def display_name(self) -> str:
        return "Decrease DynamoDB Provisioned RCU and WCU"

    def can_be_concurrent(self) -> bool:
        return True

    def dump_state(self, state: DecreaseDynamoDbState) -> Any:
        return _state_adapter.dump_python(state, mode="json")

    def load_state(self, data: Any) -> DecreaseDynamoDbState:
        return _state_adapter.validate_python(data)

    async def conserve(
        self, tasks: TaskList, dry_run: bool, tags: list[TagFilter]
    ) -> DecreaseDynamoDbState:
        names = await self.dynamodb.paginate("list_tables", "TableNames")
        tables = await gather_all(*(self._describe_for_conserve(name, tags) for name in names))

        state: DecreaseDynamoDbState = []
        for table in tables:
            if table is None:
                continue
            state.append(table)
            tasks.add(table.name, partial(self._conserve, table, dry_run))
        return state

    async def restore(self, tasks: TaskList, dry_run: bool, state: DecreaseDynamoDbState) -> None:
        for table in state:
            tasks.add(table.name, partial(self._restore, table, dry_run))

    async def _conserve(self, table: DynamoDbTableState, dry_run: bool, task: TaskNode) -> None:
        if table.billing_mode != PROVISIONED or table.throughput is None:
            task.skip(f"Skipped, table uses {table.billing_mode} billing")
            return
        if dry_run:
            task.skip("Skipped due to dry-run")
            return

        update = self._build_update(
            table.throughput,
            {index.name: index.throughput for index in table.indexes},
            MINIMUM,
            {index.name: MINIMUM for index in table.indexes},
        )
        if not update:
            task.skip("Skipped, capacity is already at the minimum")
            return

        await self._update(task, table.name, update)
        task.output = "Decreased provisioned capacity"

    async def _restore(self, table: DynamoDbTableState, dry_run: bool, task: TaskNode) -> None:
        if table.billing_mode != PROVISIONED or table.throughput is None:
            task.skip(f"Skipped, table uses {table.billing_mode} billing")
            return
        if dry_run:
            task.skip("Skipped due to dry-run")
            return

        try:
            current = await self._describe_table(table.name)
        except StateMismatchError as e:
            task.skip(str(e), warning=True)
            return

        current_indexes = {
            index["IndexName"]: _throughput(index.get("ProvisionedThroughput"))
            for index in current.get("GlobalSecondaryIndexes", [])
        }
        missing = [index.name for index in table.indexes if index.name not in current_indexes]
        update = self._build_update(
            _throughput(current.get("ProvisionedThroughput")),
            current_indexes,
            table.throughput,
            {
                index.name: index.throughput
                for index in table.indexes
                if index.name in current_indexes
            },
        )
        if not update:
            if missing:
                task.skip(f"Index {', '.join(missing)} no longer exists", warning=True)
            else:
                task.skip("Skipped, capacity is already restored")
            return

        await self._update(task, table.name, update)
        if missing:
            task.output = f"Restored capacity, index {', '.join(missing)} no longer exists"
        else:
            task.output = "Restored provisioned capacity"

    @staticmethod
    def _build_update(
        current: ThroughputState | None,
        current_indexes: dict[str, ThroughputState | None],
        target: ThroughputState,
        target_indexes: dict[str, ThroughputState],
    ) -> dict[str, Any]:
        # DynamoDB rejects updates that leave a capacity unchanged
        update: dict[str, Any] = {}
        if current != target:
            update["ProvisionedThroughput"] = target.to_api()

        index_updates = [
            {"Update": {"IndexName": name, "ProvisionedThroughput": throughput.to_api()}}
            for name, throughput in target_indexes.items()
            if current_indexes.get(name) != throughput
        ]
        if index_updates:
            update["GlobalSecondaryIndexUpdates"] = index_updates
        return update

    async def _update(self, task: TaskNode, name: str, update: dict[str, Any]) -> None:
        task.output = "Updating provisioned capacity..."
        await self.dynamodb.mutate("update_table", TableName=name, **update)
        task.output = "Waiting for table to become active..."
        await self.dynamodb.wait_until(
            partial(self._table_active, name), f"table {name} to become active"
        )

    async def _table_active(self, name: str) -> bool:
        table = await self._describe_table(name)
        return table.get("TableStatus") == ACTIVE and all(
            index.get("IndexStatus") == ACTIVE
            for index in table.get("GlobalSecondaryIndexes", [])
        )

    async def _describe_for_conserve(
        self, name: str, tags: list[TagFilter]
    ) -> DynamoDbTableState | None:
        response = await self.dynamodb.query("describe_table", TableName=name)
        table = response.get("Table")
        if not table or "TableArn" not in table:
            raise DiscoveryError(
                f"Unexpected error: TableArn is missing for DynamoDB table {name}"
            )

        if tags:
            tag_response = await self.dynamodb.query(
                "list_tags_of_resource", ResourceArn=table["TableArn"]
            )
            if not matches_tags(tags_to_dict(tag_response.get("Tags")), tags):
                return None

        billing_mode = table.get("BillingModeSummary", {}).get("BillingMode", PROVISIONED)
        indexes = []
        for index in table.get("GlobalSecondaryIndexes", []):
            throughput = _throughput(index.get("ProvisionedThroughput"))
            if throughput is not None:
                indexes.append(DynamoDbIndexState(name=index["IndexName"], throughput=throughput))

        return DynamoDbTableState(
            name=name,
            billing_mode=billing_mode,
            throughput=_throughput(table.get("ProvisionedThroughput"))
            if billing_mode == PROVISIONED
            else None,
            indexes=indexes if billing_mode == PROVISIONED else [],
        )

    async def _describe_table(self, name: str) -> dict[str, Any]:
        try:
            response = await self.dynamodb.query("describe_table", TableName=name)
        except DiscoveryError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and error_code(cause) == "ResourceNotFoundException":
                raise StateMismatchError(f"Table {name} no longer exists") from e
            raise
        return response["Table"]
