"""Remote RCON command execution.

A command is dispatched once to the remote execution service and the
resulting invocation is polled until it reaches a terminal state or the local
attempt budget runs out:

    DISPATCHED -> (initial delay) -> POLLING -> SUCCEEDED
                                             -> FAILED
                                             -> TIMED_OUT (local budget)

The dispatched job cannot be cancelled from here. A local timeout only stops
polling; the remote job may still complete on its own.
"""
import abc
import asyncio
import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from blockhaven.core.commands import validate_command
from blockhaven.errors import (
    CommandValidationError,
    ExecutionError,
    ExecutionTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

SUCCESS_FALLBACK_OUTPUT = "Command executed successfully"


class InvocationStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    DELAYED = "Delayed"
    SUCCESS = "Success"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "InvocationStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (self.SUCCESS, self.FAILED, self.TIMED_OUT, self.CANCELLED)


class ExecutorPhase(str, Enum):
    DISPATCHED = "dispatched"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class InvocationNotVisible(Exception):
    """The service acknowledged the job but cannot report on it yet."""


@dataclass
class InvocationReport:
    """One status read from the remote execution service."""
    status: str
    stdout: str = ""
    stderr: str = ""
    status_details: Optional[str] = None


@dataclass
class RemoteInvocation:
    invocation_id: str
    instance_id: str
    command_text: str
    status: InvocationStatus = InvocationStatus.PENDING
    raw_status: Optional[str] = None
    status_details: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    phase: ExecutorPhase = ExecutorPhase.DISPATCHED

    def apply(self, report: InvocationReport) -> None:
        self.raw_status = report.status
        self.status = InvocationStatus.parse(report.status)
        self.status_details = report.status_details
        if self.status is InvocationStatus.SUCCESS:
            self.output = report.stdout
        elif self.status is InvocationStatus.FAILED:
            self.error = report.stderr


class CommandService(abc.ABC):
    """Remote command-execution service (e.g. SSM Run Command)."""

    @abc.abstractmethod
    async def submit(self, instance_id: str, command_line: str, timeout_seconds: int) -> str:
        """Submit a shell command as one job and return its invocation id."""

    @abc.abstractmethod
    async def get_invocation(self, invocation_id: str, instance_id: str) -> InvocationReport:
        """Read the invocation status. Raises InvocationNotVisible when not yet queryable."""


Sleep = Callable[[float], Awaitable[None]]


class RemoteCommandExecutor:
    def __init__(
        self,
        service: CommandService,
        instance_id: Optional[str],
        container_name: str = "blockhaven-mc",
        initial_delay: float = 1.5,
        poll_interval: float = 1.0,
        max_attempts: int = 10,
        submit_timeout: int = 30,
        sleep: Sleep = asyncio.sleep,
    ):
        self.service = service
        self.instance_id = instance_id
        self.container_name = container_name
        self.initial_delay = initial_delay
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.submit_timeout = submit_timeout
        self._sleep = sleep

    def build_command_line(self, command: str, args: Optional[str] = None) -> str:
        parts = ["docker", "exec", shlex.quote(self.container_name), "rcon-cli"]
        parts.extend(shlex.quote(word) for word in command.split())
        if args:
            parts.append(shlex.quote(args))
        return " ".join(parts)

    async def execute(self, command: str, args: Optional[str] = None) -> str:
        """Run a whitelisted command and return its trimmed output."""
        validation = validate_command(command, args)
        if not validation.valid:
            raise CommandValidationError(validation.error)

        if not self.instance_id:
            raise UpstreamUnavailable("EC2_INSTANCE_ID not configured")

        invocation = await self._dispatch(command, args)
        await self._sleep(self.initial_delay)
        return await self.poll(invocation)

    async def _dispatch(self, command: str, args: Optional[str]) -> RemoteInvocation:
        command_line = self.build_command_line(command, args)
        try:
            invocation_id = await self.service.submit(self.instance_id, command_line, self.submit_timeout)
        except (ExecutionError, UpstreamUnavailable):
            raise
        except Exception as e:
            logger.error(f"RCON submission failed: {e}")
            raise UpstreamUnavailable(f"Failed to send command: {e}") from e

        if not invocation_id:
            raise UpstreamUnavailable("Failed to send command - no command ID returned")

        logger.info(f"Dispatched RCON command '{command}' as invocation {invocation_id}")
        return RemoteInvocation(
            invocation_id=invocation_id,
            instance_id=self.instance_id,
            command_text=command_line,
        )

    async def poll(self, invocation: RemoteInvocation) -> str:
        """
        Poll a dispatched invocation until it reaches a terminal status or the
        attempt budget runs out. ``invocation.phase`` records where it ended.
        """
        invocation.phase = ExecutorPhase.POLLING
        while invocation.attempts < self.max_attempts:
            invocation.attempts += 1
            try:
                report = await self.service.get_invocation(invocation.invocation_id, invocation.instance_id)
            except InvocationNotVisible:
                logger.debug(f"Invocation {invocation.invocation_id} not visible yet (attempt {invocation.attempts})")
                await self._wait_before_next(invocation)
                continue

            invocation.apply(report)
            status = invocation.status

            if status is InvocationStatus.SUCCESS:
                invocation.phase = ExecutorPhase.SUCCEEDED
                return (invocation.output or "").strip() or SUCCESS_FALLBACK_OUTPUT

            if status is InvocationStatus.FAILED:
                invocation.phase = ExecutorPhase.FAILED
                raise ExecutionError(invocation.error or "Command execution failed")

            # Statuses we do not recognise end the command like terminal ones
            if status.is_terminal or status is InvocationStatus.UNKNOWN:
                invocation.phase = ExecutorPhase.FAILED
                message = f"Command {invocation.raw_status}"
                if invocation.status_details:
                    message = f"{message}: {invocation.status_details}"
                raise ExecutionError(message)

            await self._wait_before_next(invocation)

        invocation.phase = ExecutorPhase.TIMED_OUT
        logger.warning(
            f"Invocation {invocation.invocation_id} still running after {invocation.attempts} polls"
        )
        raise ExecutionTimeout("Command timed out waiting for result")

    async def _wait_before_next(self, invocation: RemoteInvocation) -> None:
        if invocation.attempts < self.max_attempts:
            await self._sleep(self.poll_interval)
