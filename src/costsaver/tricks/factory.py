"""Factory for creating trick instances."""

from typing import Any

from costsaver.aws.client import AwsContext
from costsaver.core.trick import Trick
from costsaver.tricks.dynamodb import DecreaseDynamoDbProvisionedRcuWcuTrick
from costsaver.tricks.ec2 import ShutdownEc2InstancesTrick
from costsaver.tricks.ecs import StopFargateEcsServicesTrick
from costsaver.tricks.kinesis import DecreaseKinesisStreamsShardsTrick
from costsaver.tricks.rds import StopRdsDatabaseInstancesTrick

SUPPORTED_TRICKS = [
    "stop-fargate-ecs-services",
    "stop-rds-database-instances",
    "shutdown-ec2-instances",
    "decrease-dynamodb-provisioned-rcu-wcu",
    "decrease-kinesis-streams-shards",
]


def create_trick(machine_name: str, aws: AwsContext) -> Trick[Any] | None:
    """Create a trick instance by machine name.

    Args:
        machine_name: Machine name of the trick to create
        aws: AWS context shared by all tricks

    Returns:
        Trick instance or None if the name is not supported
    """
    if machine_name == "stop-fargate-ecs-services":
        return StopFargateEcsServicesTrick(aws)
    if machine_name == "stop-rds-database-instances":
        return StopRdsDatabaseInstancesTrick(aws)
    if machine_name == "shutdown-ec2-instances":
        return ShutdownEc2InstancesTrick(aws)
    if machine_name == "decrease-dynamodb-provisioned-rcu-wcu":
        return DecreaseDynamoDbProvisionedRcuWcuTrick(aws)
    if machine_name == "decrease-kinesis-streams-shards":
        return DecreaseKinesisStreamsShardsTrick(aws)

    return None


def create_all_tricks(aws: AwsContext) -> list[Trick[Any]]:
    """Create every supported trick, in SUPPORTED_TRICKS order.

    Args:
        aws: AWS context shared by all tricks

    Returns:
        List of trick instances
    """
    tricks = []

    for machine_name in SUPPORTED_TRICKS:
        trick = create_trick(machine_name, aws)
        if trick:
            tricks.append(trick)

    return tricks
