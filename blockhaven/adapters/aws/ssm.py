"""SSM Run Command adapter for RCON execution."""
import asyncio
import logging

from botocore.exceptions import BotoCoreError, ClientError

from blockhaven.adapters.aws.session import error_code
from blockhaven.core.executor import CommandService, InvocationNotVisible, InvocationReport
from blockhaven.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

RUN_SHELL_DOCUMENT = "AWS-RunShellScript"


class SsmCommandService(CommandService):
    def __init__(self, client):
        self.client = client

    async def submit(self, instance_id: str, command_line: str, timeout_seconds: int) -> str:
        try:
            response = await asyncio.to_thread(
                self.client.send_command,
                InstanceIds=[instance_id],
                DocumentName=RUN_SHELL_DOCUMENT,
                Parameters={"commands": [command_line]},
                TimeoutSeconds=timeout_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SSM send_command failed: {e}")
            raise UpstreamUnavailable(f"Failed to send command: {e}") from e
        return (response.get("Command") or {}).get("CommandId", "")

    async def get_invocation(self, invocation_id: str, instance_id: str) -> InvocationReport:
        try:
            response = await asyncio.to_thread(
                self.client.get_command_invocation,
                CommandId=invocation_id,
                InstanceId=instance_id,
            )
        except ClientError as e:
            if error_code(e) == "InvocationDoesNotExist":
                raise InvocationNotVisible(invocation_id) from e
            logger.error(f"SSM get_command_invocation failed: {e}")
            raise UpstreamUnavailable(f"Failed to read command status: {e}") from e
        except BotoCoreError as e:
            raise UpstreamUnavailable(f"Failed to read command status: {e}") from e

        return InvocationReport(
            status=response.get("Status", "Unknown"),
            stdout=response.get("StandardOutputContent") or "",
            stderr=response.get("StandardErrorContent") or "",
            status_details=response.get("StatusDetails"),
        )
