"""Unit tests for trick factory."""

from unittest.mock import Mock

from costsaver.aws.client import AwsContext
from costsaver.config.models import CostSaverConfig
from costsaver.core.trick import Trick
from costsaver.tricks.dynamodb import DecreaseDynamoDbProvisionedRcuWcuTrick
from costsaver.tricks.ec2 import ShutdownEc2InstancesTrick
from costsaver.tricks.ecs import StopFargateEcsServicesTrick
from costsaver.tricks.factory import SUPPORTED_TRICKS, create_all_tricks, create_trick
from costsaver.tricks.kinesis import DecreaseKinesisStreamsShardsTrick
from costsaver.tricks.rds import StopRdsDatabaseInstancesTrick


def make_aws() -> AwsContext:
    return AwsContext(CostSaverConfig(), session=Mock())


class TestSupportedTricks:
    """Tests for SUPPORTED_TRICKS constant."""

    def test_supported_tricks_list(self) -> None:
        """Test that SUPPORTED_TRICKS contains expected tricks."""
        assert SUPPORTED_TRICKS == [
            "stop-fargate-ecs-services",
            "stop-rds-database-instances",
            "shutdown-ec2-instances",
            "decrease-dynamodb-provisioned-rcu-wcu",
            "decrease-kinesis-streams-shards",
        ]

    def test_recreating_tricks_not_supported(self) -> None:
        """Test that tricks which delete and recreate resources are not offered."""
        assert "remove-nat-gateways" not in SUPPORTED_TRICKS
        assert "snapshot-remove-elasticache-redis" not in SUPPORTED_TRICKS


class TestCreateTrick:
    """Tests for create_trick function."""

    def test_create_ecs(self) -> None:
        """Test creating the ECS trick."""
        assert isinstance(
            create_trick("stop-fargate-ecs-services", make_aws()), StopFargateEcsServicesTrick
        )

    def test_create_rds(self) -> None:
        """Test creating the RDS trick."""
        assert isinstance(
            create_trick("stop-rds-database-instances", make_aws()), StopRdsDatabaseInstancesTrick
        )

    def test_create_ec2(self) -> None:
        """Test creating the EC2 trick."""
        assert isinstance(
            create_trick("shutdown-ec2-instances", make_aws()), ShutdownEc2InstancesTrick
        )

    def test_create_dynamodb(self) -> None:
        """Test creating the DynamoDB trick."""
        assert isinstance(
            create_trick("decrease-dynamodb-provisioned-rcu-wcu", make_aws()),
            DecreaseDynamoDbProvisionedRcuWcuTrick,
        )

    def test_create_kinesis(self) -> None:
        """Test creating the Kinesis trick."""
        assert isinstance(
            create_trick("decrease-kinesis-streams-shards", make_aws()),
            DecreaseKinesisStreamsShardsTrick,
        )

    def test_create_unknown_trick(self) -> None:
        """Test that unknown trick name returns None."""
        assert create_trick("unknown", make_aws()) is None

    def test_created_trick_names_match(self) -> None:
        """Test that each trick reports the name it was created by."""
        aws = make_aws()
        for name in SUPPORTED_TRICKS:
            trick = create_trick(name, aws)
            assert trick is not None
            assert trick.machine_name() == name

    def test_tricks_share_clients(self) -> None:
        """Test that tricks created from one context share its clients."""
        aws = make_aws()
        ecs = create_trick("stop-fargate-ecs-services", aws)
        assert ecs.ecs is aws.client("ecs")


class TestCreateAllTricks:
    """Tests for create_all_tricks function."""

    def test_respects_order(self) -> None:
        """Test that create_all_tricks respects SUPPORTED_TRICKS order."""
        tricks = create_all_tricks(make_aws())
        assert [t.machine_name() for t in tricks] == SUPPORTED_TRICKS

    def test_all_satisfy_protocol(self) -> None:
        """Test that every created trick implements the Trick protocol."""
        assert all(isinstance(t, Trick) for t in create_all_tricks(make_aws()))
