"""Trick decreasing the shard count of Kinesis data streams."""

from functools import partial
from typing import Any

from botocore.exceptions import ClientError
from pydantic import BaseModel, TypeAdapter

from costsaver.aws.client import AwsContext, error_code, gather_all
from costsaver.aws.tags import matches_tags, tags_to_dict
from costsaver.core.errors import DiscoveryError, StateMismatchError
from costsaver.core.tasks import TaskList, TaskNode
from costsaver.core.trick import TagFilter

PROVISIONED = "PROVISIONED"
ACTIVE = "ACTIVE"
MIN_SHARDS = 1


class KinesisStreamState(BaseModel):
    name: str
    mode: str = PROVISIONED
    shards: int


DecreaseKinesisStreamsShardsState = list[KinesisStreamState]

_state_adapter = TypeAdapter(DecreaseKinesisStreamsShardsState)


def next_shard_count(current: int, target: int) -> int:
    """Get the next step when resharding from ``current`` towards ``target``.

    A single UpdateShardCount call can at most double or halve the number of
    open shards, so larger changes take several steps.

    Args:
        current: Open shard count
        target: Desired shard count

    Returns:
        Shard count for the next update call
    """
    if target > current:
        return min(current * 2, target)
    return max((current + 1) // 2, target)


class DecreaseKinesisStreamsShardsTrick:
    """Reshards provisioned streams down to a single shard.

    On-demand streams scale by themselves; they are recorded and skipped.
    """

    def __init__(self, aws: AwsContext) -> None:
        self.kinesis = aws.client("kinesis")

    def machine_name(self) -> str:
        return "decrease-kinesis-streams-shards"

    def display_name(self) -> str:
        return "Decrease Kinesis Streams Shards"

    def can_be_concurrent(self) -> bool:
        return True

    def dump_state(self, state: DecreaseKinesisStreamsShardsState) -> Any:
        return _state_adapter.dump_python(state, mode="json")

    def load_state(self, data: Any) -> DecreaseKinesisStreamsShardsState:
        return _state_adapter.validate_python(data)

    async def conserve(
        self, tasks: TaskList, dry_run: bool, tags: list[TagFilter]
    ) -> DecreaseKinesisStreamsShardsState:
        names = await self.kinesis.paginate("list_streams", "StreamNames")
        streams = await gather_all(*(self._describe_for_conserve(name, tags) for name in names))

        state: DecreaseKinesisStreamsShardsState = []
        for stream in streams:
            if stream is None:
                continue
            state.append(stream)
            tasks.add(stream.name, partial(self._conserve, stream, dry_run))
        return state

    async def restore(
        self, tasks: TaskList, dry_run: bool, state: DecreaseKinesisStreamsShardsState
    ) -> None:
        for stream in state:
            tasks.add(stream.name, partial(self._restore, stream, dry_run))

    async def _conserve(self, stream: KinesisStreamState, dry_run: bool, task: TaskNode) -> None:
        if stream.mode != PROVISIONED:
            task.skip(f"Skipped, stream is in {stream.mode} mode")
        elif dry_run:
            task.skip("Skipped due to dry-run")
        elif stream.shards <= MIN_SHARDS:
            task.skip(f"Skipped, stream already has {stream.shards} shard")
        else:
            await self._reshard(task, stream.name, stream.shards, MIN_SHARDS)
            task.output = f"Decreased shards from {stream.shards} to {MIN_SHARDS}"

    async def _restore(self, stream: KinesisStreamState, dry_run: bool, task: TaskNode) -> None:
        if stream.mode != PROVISIONED:
            task.skip(f"Skipped, stream is in {stream.mode} mode")
            return
        if dry_run:
            task.skip("Skipped due to dry-run")
            return

        try:
            summary = await self._describe_stream(stream.name)
        except StateMismatchError as e:
            task.skip(str(e), warning=True)
            return

        current = summary["OpenShardCount"]
        if current == stream.shards:
            task.skip(f"Skipped, stream already has {stream.shards} shards")
            return

        await self._reshard(task, stream.name, current, stream.shards)
        task.output = f"Restored shards from {current} to {stream.shards}"

    async def _reshard(self, task: TaskNode, name: str, current: int, target: int) -> None:
        while current != target:
            step = next_shard_count(current, target)
            task.output = f"Updating shard count from {current} to {step}..."
            await self.kinesis.mutate(
                "update_shard_count",
                StreamName=name,
                TargetShardCount=step,
                ScalingType="UNIFORM_SCALING",
            )
            task.output = "Waiting for stream to become active..."
            await self.kinesis.wait_until(
                partial(self._stream_active, name), f"stream {name} to become active"
            )
            current = step

    async def _stream_active(self, name: str) -> bool:
        summary = await self._describe_stream(name)
        return summary.get("StreamStatus") == ACTIVE

    async def _describe_for_conserve(
        self, name: str, tags: list[TagFilter]
    ) -> KinesisStreamState | None:
        summary = (
            await self.kinesis.query("describe_stream_summary", StreamName=name)
        ).get("StreamDescriptionSummary")
        if not summary or summary.get("OpenShardCount") is None:
            raise DiscoveryError(
                f"Unexpected error: OpenShardCount is missing for Kinesis stream {name}"
            )

        if tags:
            tag_response = await self.kinesis.query("list_tags_for_stream", StreamName=name)
            if not matches_tags(tags_to_dict(tag_response.get("Tags")), tags):
                return None

        return KinesisStreamState(
            name=name,
            mode=summary.get("StreamModeDetails", {}).get("StreamMode", PROVISIONED),
            shards=summary["OpenShardCount"],
        )

    async def _describe_stream(self, name: str) -> dict[str, Any]:
        try:
            response = await self.kinesis.query("describe_stream_summary", StreamName=name)
        except DiscoveryError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and error_code(cause) == "ResourceNotFoundException":
                raise StateMismatchError(f"Stream {name} no longer exists") from e
            raise
        return response["StreamDescriptionSummary"]
