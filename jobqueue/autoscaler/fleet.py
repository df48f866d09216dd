"""
Fleet-management boundary.

The autoscaler only needs to list, launch and terminate worker
instances. EC2Fleet implements this with boto3; calls run in a thread
so the control loop stays on the event loop.
"""

import asyncio
import logging
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from jobqueue.config import Settings, get_settings
from jobqueue.errors import FleetError

logger = logging.getLogger(__name__)

ACTIVE_INSTANCE_STATES = ["running", "pending"]
ROLE_TAG_KEY = "Role"


class FleetManager(Protocol):
    """Operations the autoscaler needs from the compute provider."""

    async def list_active_instances(self) -> list[str]: ...

    async def launch_instances(self, count: int) -> list[str]: ...

    async def terminate_instances(self, instance_ids: list[str]) -> None: ...


class EC2Fleet:
    """
    Worker fleet on AWS EC2.

    Worker instances are identified by a Role tag and launched from a
    launch template.
    """

    def __init__(
        self,
        region: str,
        launch_template_id: str,
        role_tag: str = "worker",
        client: Any | None = None,
    ):
        """
        Initialize the fleet.

        Args:
            region: AWS region name.
            launch_template_id: Template used for new worker instances.
            role_tag: Value of the Role tag marking worker instances.
            client: Pre-built EC2 client, mostly for tests.
        """
        self.region = region
        self.launch_template_id = launch_template_id
        self.role_tag = role_tag
        self._client = client or boto3.client("ec2", region_name=region)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "EC2Fleet":
        settings = settings or get_settings()
        return cls(
            region=settings.aws_region,
            launch_template_id=settings.launch_template_id,
            role_tag=settings.worker_role_tag,
        )

    async def _call(self, operation: str, method: str, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Error during {operation}",
                extra={"operation": operation, "error": str(e)},
            )
            raise FleetError(operation, str(e)) from e

    async def list_active_instances(self) -> list[str]:
        """Ids of worker instances in running or pending state."""
        response = await self._call(
            "describe_instances",
            "describe_instances",
            Filters=[
                {"Name": f"tag:{ROLE_TAG_KEY}", "Values": [self.role_tag]},
                {"Name": "instance-state-name", "Values": ACTIVE_INSTANCE_STATES},
            ],
        )
        return [
            instance["InstanceId"]
            for reservation in response.get("Reservations", [])
            for instance in reservation.get("Instances", [])
        ]

    async def launch_instances(self, count: int) -> list[str]:
        """Launch count instances from the template and tag them as workers."""
        response = await self._call(
            "run_instances",
            "run_instances",
            LaunchTemplate={"LaunchTemplateId": self.launch_template_id},
            MinCount=count,
            MaxCount=count,
        )
        instance_ids = [instance["InstanceId"] for instance in response.get("Instances", [])]

        if instance_ids:
            await self._call(
                "create_tags",
                "create_tags",
                Resources=instance_ids,
                Tags=[{"Key": ROLE_TAG_KEY, "Value": self.role_tag}],
            )

        logger.info("Launched instances", extra={"instance_ids": instance_ids})
        return instance_ids

    async def terminate_instances(self, instance_ids: list[str]) -> None:
        """Terminate the given instances."""
        if not instance_ids:
            return
        await self._call(
            "terminate_instances",
            "terminate_instances",
            InstanceIds=instance_ids,
        )
        logger.info("Terminated instances", extra={"instance_ids": instance_ids})
