"""EC2 adapter for starting, stopping and describing the game server VM."""
import asyncio
import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from blockhaven.domain.interfaces import InstanceController, InstanceDescription, StateChange
from blockhaven.errors import InstanceNotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)


class Ec2InstanceController(InstanceController):
    def __init__(self, client, instance_id: Optional[str]):
        self.client = client
        self.instance_id = instance_id

    def _require_instance_id(self) -> str:
        if not self.instance_id:
            raise UpstreamUnavailable("EC2_INSTANCE_ID environment variable is not set")
        return self.instance_id

    async def _call(self, method: str, **kwargs) -> dict:
        try:
            return await asyncio.to_thread(getattr(self.client, method), **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"EC2 {method} failed: {e}")
            raise UpstreamUnavailable(str(e)) from e

    async def describe(self) -> InstanceDescription:
        instance_id = self._require_instance_id()
        response = await self._call("describe_instances", InstanceIds=[instance_id])
        reservations = response.get("Reservations") or []
        instances = reservations[0].get("Instances") if reservations else None
        if not instances:
            raise InstanceNotFound("Instance not found")

        instance = instances[0]
        return InstanceDescription(
            instance_id=instance.get("InstanceId", instance_id),
            state=(instance.get("State") or {}).get("Name", "unknown"),
            public_ip=instance.get("PublicIpAddress"),
            launch_time=instance.get("LaunchTime"),
        )

    async def start(self) -> StateChange:
        instance_id = self._require_instance_id()
        response = await self._call("start_instances", InstanceIds=[instance_id])
        return self._state_change(instance_id, response.get("StartingInstances"))

    async def stop(self) -> StateChange:
        instance_id = self._require_instance_id()
        # Not forced: the OS shuts down cleanly so the world is saved
        response = await self._call("stop_instances", InstanceIds=[instance_id], Force=False)
        return self._state_change(instance_id, response.get("StoppingInstances"))

    @staticmethod
    def _state_change(instance_id: str, changes) -> StateChange:
        change = (changes or [{}])[0]
        return StateChange(
            instance_id=instance_id,
            current_state=(change.get("CurrentState") or {}).get("Name"),
            previous_state=(change.get("PreviousState") or {}).get("Name"),
        )
