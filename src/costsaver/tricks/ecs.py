"""Trick scaling Fargate ECS services down to zero."""

from functools import partial
from typing import Any

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, TypeAdapter

from costsaver.aws.client import AwsContext, error_code, gather_all
from costsaver.aws.tags import matches_tags, tags_to_dict
from costsaver.core.errors import DiscoveryError, StateMismatchError
from costsaver.core.logging import get_logger
from costsaver.core.tasks import TaskList, TaskNode
from costsaver.core.trick import TagFilter

logger = get_logger(__name__)

ECS_NAMESPACE = "ecs"
DESIRED_COUNT_DIMENSION = "ecs:service:DesiredCount"
DESCRIBE_SERVICES_CHUNK = 10


class ScalableTargetState(BaseModel):
    """Auto scaling bounds of a service before conserve."""

    namespace: str = ECS_NAMESPACE
    resource_id: str
    scalable_dimension: str = DESIRED_COUNT_DIMENSION
    min: int
    max: int


class EcsServiceState(BaseModel):
    """Desired count and scaling bounds of a service before conserve."""

    arn: str
    desired: int
    scalable_targets: list[ScalableTargetState] = Field(default_factory=list)


class EcsClusterState(BaseModel):
    arn: str
    services: list[EcsServiceState] = Field(default_factory=list)


StopFargateEcsServicesState = list[EcsClusterState]

_state_adapter = TypeAdapter(StopFargateEcsServicesState)


def service_resource_id(cluster_arn: str, service_arn: str) -> str:
    """Build the Application Auto Scaling resource id of a service.

    Args:
        cluster_arn: Cluster ARN
        service_arn: Service ARN

    Returns:
        Resource id in the form 'service/<cluster>/<service>'
    """
    cluster_name = cluster_arn.split("/")[-1]
    service_name = service_arn.split("/")[-1]
    return f"service/{cluster_name}/{service_name}"


class StopFargateEcsServicesTrick:
    """Sets the desired count of Fargate services to zero.

    Auto scaling targets are pinned to zero first so that scaling policies
    do not bring tasks back, and are released again before the desired count
    is restored.
    """

    def __init__(self, aws: AwsContext) -> None:
        self.ecs = aws.client("ecs")
        self.aas = aws.client("application-autoscaling")

    def machine_name(self) -> str:
        return "stop-fargate-ecs-services"

    def display_name(self) -> str:
        return "Stop Fargate ECS Services"

    def can_be_concurrent(self) -> bool:
        return True

    def dump_state(self, state: StopFargateEcsServicesState) -> Any:
        return _state_adapter.dump_python(state, mode="json")

    def load_state(self, data: Any) -> StopFargateEcsServicesState:
        return _state_adapter.validate_python(data)

    async def conserve(
        self, tasks: TaskList, dry_run: bool, tags: list[TagFilter]
    ) -> StopFargateEcsServicesState:
        cluster_arns = await self.ecs.paginate("list_clusters", "clusterArns")
        state = await gather_all(*(self._describe_cluster(arn, tags) for arn in cluster_arns))

        for cluster in state:
            for service in cluster.services:
                tasks.add(
                    service_resource_id(cluster.arn, service.arn),
                    partial(self._conserve_service_tasks, cluster, service, dry_run),
                )

        return list(state)

    async def restore(
        self, tasks: TaskList, dry_run: bool, state: StopFargateEcsServicesState
    ) -> None:
        for cluster in state:
            for service in cluster.services:
                tasks.add(
                    service_resource_id(cluster.arn, service.arn),
                    partial(self._restore_service_tasks, cluster, service, dry_run),
                )

    async def _conserve_service_tasks(
        self,
        cluster: EcsClusterState,
        service: EcsServiceState,
        dry_run: bool,
        task: TaskNode,
    ) -> TaskList:
        return TaskList(
            [
                TaskNode("Auto scaling", partial(self._conserve_scalable_targets, service, dry_run)),
                TaskNode("Desired count", partial(self._conserve_desired, cluster, service, dry_run)),
            ]
        )

    async def _restore_service_tasks(
        self,
        cluster: EcsClusterState,
        service: EcsServiceState,
        dry_run: bool,
        task: TaskNode,
    ) -> TaskList:
        return TaskList(
            [
                TaskNode(
                    "Auto scaling",
                    partial(self._restore_scalable_targets, cluster, service, dry_run),
                ),
                TaskNode("Desired count", partial(self._restore_desired, cluster, service, dry_run)),
            ]
        )

    async def _conserve_desired(
        self,
        cluster: EcsClusterState,
        service: EcsServiceState,
        dry_run: bool,
        task: TaskNode,
    ) -> None:
        if dry_run:
            task.skip("Skipped due to dry-run")
        elif service.desired > 0:
            await self._set_desired(task, cluster.arn, service.arn, 0)
            task.output = "Set desired count to zero"
        else:
            task.skip("Skipped, desired count is already zero")

    async def _restore_desired(
        self,
        cluster: EcsClusterState,
        service: EcsServiceState,
        dry_run: bool,
        task: TaskNode,
    ) -> None:
        if dry_run:
            task.skip("Skipped due to dry-run")
            return

        try:
            current = await self._describe_service(cluster.arn, service.arn)
        except StateMismatchError as e:
            task.skip(str(e), warning=True)
            return

        if current["desiredCount"] == service.desired:
            task.skip(f"Skipped, desired count is already {service.desired}")
            return

        await self._set_desired(task, cluster.arn, service.arn, service.desired)
        task.output = f"Restored desired count to {service.desired}"

    async def _conserve_scalable_targets(
        self, service: EcsServiceState, dry_run: bool, task: TaskNode
    ) -> None:
        if not service.scalable_targets:
            task.skip("No scalable targets defined")
            return
        if dry_run:
            task.skip("Skipped due to dry-run")
            return
        if all(t.min == 0 and t.max == 0 for t in service.scalable_targets):
            task.skip("Skipped, scalable targets are already zero")
            return

        for target in service.scalable_targets:
            task.output = f"Setting {target.scalable_dimension} capacity to 0-0..."
            await self._register_target(target, 0, 0)
        task.output = "Set scalable target capacity to zero"

    async def _restore_scalable_targets(
        self,
        cluster: EcsClusterState,
        service: EcsServiceState,
        dry_run: bool,
        task: TaskNode,
    ) -> None:
        if not service.scalable_targets:
            task.skip("No scalable targets defined")
            return
        if dry_run:
            task.skip("Skipped due to dry-run")
            return

        try:
            await self._describe_service(cluster.arn, service.arn)
        except StateMismatchError as e:
            task.skip(str(e), warning=True)
            return

        current = {
            (t["ResourceId"], t["ScalableDimension"]): (t["MinCapacity"], t["MaxCapacity"])
            for t in await self._describe_scalable_targets(
                [t.resource_id for t in service.scalable_targets]
            )
        }

        changed = False
        for target in service.scalable_targets:
            key = (target.resource_id, target.scalable_dimension)
            if current.get(key) == (target.min, target.max):
                continue
            task.output = (
                f"Setting {target.scalable_dimension} capacity to {target.min}-{target.max}..."
            )
            await self._register_target(target, target.min, target.max)
            changed = True

        if changed:
            task.output = "Restored scalable target capacity"
        else:
            task.skip("Skipped, scalable targets are already restored")

    async def _set_desired(
        self, task: TaskNode, cluster_arn: str, service_arn: str, desired: int
    ) -> None:
        task.output = f"Updating desired count to {desired}..."
        await self.ecs.mutate(
            "update_service", cluster=cluster_arn, service=service_arn, desiredCount=desired
        )
        task.output = f"Waiting for service to reach {desired} running tasks..."
        await self.ecs.wait_until(
            partial(self._service_stable, cluster_arn, service_arn),
            f"service {service_resource_id(cluster_arn, service_arn)} to become stable",
        )

    async def _service_stable(self, cluster_arn: str, service_arn: str) -> bool:
        service = await self._describe_service(cluster_arn, service_arn)
        return (
            len(service.get("deployments", [])) == 1
            and service.get("runningCount") == service.get("desiredCount")
        )

    async def _register_target(self, target: ScalableTargetState, min_: int, max_: int) -> None:
        await self.aas.mutate(
            "register_scalable_target",
            ServiceNamespace=target.namespace,
            ResourceId=target.resource_id,
            ScalableDimension=target.scalable_dimension,
            MinCapacity=min_,
            MaxCapacity=max_,
        )

    async def _describe_cluster(self, cluster_arn: str, tags: list[TagFilter]) -> EcsClusterState:
        services = await self._describe_all_services(cluster_arn)
        states = await gather_all(
            *(
                self._service_state(cluster_arn, service)
                for service in services
                if matches_tags(tags_to_dict(service.get("tags")), tags)
            )
        )
        return EcsClusterState(arn=cluster_arn, services=list(states))

    async def _service_state(self, cluster_arn: str, service: dict[str, Any]) -> EcsServiceState:
        if service.get("serviceArn") is None:
            raise DiscoveryError("Unexpected error: serviceArn is missing for ECS service")
        if service.get("desiredCount") is None:
            raise DiscoveryError(
                f"Unexpected error: desiredCount is missing for ECS service {service['serviceArn']}"
            )

        resource_id = service_resource_id(cluster_arn, service["serviceArn"])
        targets = await self._describe_scalable_targets([resource_id])
        return EcsServiceState(
            arn=service["serviceArn"],
            desired=service["desiredCount"],
            scalable_targets=[
                ScalableTargetState(
                    resource_id=t["ResourceId"],
                    scalable_dimension=t["ScalableDimension"],
                    min=t["MinCapacity"],
                    max=t["MaxCapacity"],
                )
                for t in targets
            ],
        )

    async def _describe_all_services(self, cluster_arn: str) -> list[dict[str, Any]]:
        service_arns = await self.ecs.paginate(
            "list_services", "serviceArns", cluster=cluster_arn, launchType="FARGATE"
        )
        result: list[dict[str, Any]] = []
        for start in range(0, len(service_arns), DESCRIBE_SERVICES_CHUNK):
            chunk = service_arns[start : start + DESCRIBE_SERVICES_CHUNK]
            response = await self.ecs.query(
                "describe_services", cluster=cluster_arn, services=chunk, include=["TAGS"]
            )
            result.extend(response.get("services", []))
        return result

    async def _describe_service(self, cluster_arn: str, service_arn: str) -> dict[str, Any]:
        try:
            response = await self.ecs.query(
                "describe_services", cluster=cluster_arn, services=[service_arn]
            )
        except DiscoveryError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and error_code(cause) in (
                "ClusterNotFoundException",
                "ServiceNotFoundException",
            ):
                raise StateMismatchError(
                    f"Service {service_resource_id(cluster_arn, service_arn)} no longer exists"
                ) from e
            raise

        services = response.get("services", [])
        if not services or services[0].get("status") == "INACTIVE":
            raise StateMismatchError(
                f"Service {service_resource_id(cluster_arn, service_arn)} no longer exists"
            )
        return services[0]

    async def _describe_scalable_targets(self, resource_ids: list[str]) -> list[dict[str, Any]]:
        return await self.aas.paginate(
            "describe_scalable_targets",
            "ScalableTargets",
            ServiceNamespace=ECS_NAMESPACE,
            ResourceIds=resource_ids,
            ScalableDimension=DESIRED_COUNT_DIMENSION,
        )
