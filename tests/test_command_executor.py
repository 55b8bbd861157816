"""Tests for the RCON execution state machine."""
import pytest
from unittest.mock import AsyncMock

from blockhaven.core.executor import (
    CommandService,
    ExecutorPhase,
    InvocationNotVisible,
    InvocationReport,
    InvocationStatus,
    RemoteCommandExecutor,
    RemoteInvocation,
    SUCCESS_FALLBACK_OUTPUT,
)
from blockhaven.errors import (
    CommandValidationError,
    ExecutionError,
    ExecutionTimeout,
    UpstreamUnavailable,
)


class ScriptedService(CommandService):
    """Returns the scripted reports (or raises scripted exceptions) in order."""

    def __init__(self, script, invocation_id="cmd-123"):
        self.script = list(script)
        self.invocation_id = invocation_id
        self.submitted = []
        self.polls = 0

    async def submit(self, instance_id, command_line, timeout_seconds):
        self.submitted.append((instance_id, command_line, timeout_seconds))
        return self.invocation_id

    async def get_invocation(self, invocation_id, instance_id):
        self.polls += 1
        step = self.script[min(self.polls, len(self.script)) - 1]
        if isinstance(step, Exception):
            raise step
        return step


def make_executor(service, max_attempts=10):
    sleep = AsyncMock()
    executor = RemoteCommandExecutor(
        service,
        instance_id="i-0abc",
        container_name="blockhaven-mc",
        initial_delay=1.5,
        poll_interval=1.0,
        max_attempts=max_attempts,
        submit_timeout=30,
        sleep=sleep,
    )
    return executor, sleep


@pytest.mark.asyncio
async def test_success_on_third_poll():
    service = ScriptedService([
        InvocationReport("Pending"),
        InvocationReport("InProgress"),
        InvocationReport("Success", stdout="  There are 3 players\n"),
    ])
    executor, sleep = make_executor(service)

    output = await executor.execute("list")

    assert output == "There are 3 players"
    assert service.polls == 3
    assert len(service.submitted) == 1
    assert [c.args[0] for c in sleep.await_args_list] == [1.5, 1.0, 1.0]


@pytest.mark.asyncio
async def test_always_in_progress_times_out_locally():
    service = ScriptedService([InvocationReport("InProgress")])
    executor, sleep = make_executor(service, max_attempts=10)

    with pytest.raises(ExecutionTimeout) as exc:
        await executor.execute("save-all")

    assert service.polls == 10
    assert exc.value.message == "Command timed out waiting for result"
    # Initial delay plus one interval between each pair of polls
    assert sleep.await_count == 1 + 9


@pytest.mark.asyncio
async def test_not_yet_visible_is_retried():
    service = ScriptedService([
        InvocationNotVisible("cmd-123"),
        InvocationReport("Success", stdout="Saved the game"),
    ])
    executor, _ = make_executor(service)

    assert await executor.execute("save-all") == "Saved the game"
    assert service.polls == 2


@pytest.mark.asyncio
async def test_empty_output_uses_fallback():
    service = ScriptedService([InvocationReport("Success", stdout="   ")])
    executor, _ = make_executor(service)
    assert await executor.execute("save-all") == SUCCESS_FALLBACK_OUTPUT


@pytest.mark.asyncio
async def test_failed_status_surfaces_stderr():
    service = ScriptedService([InvocationReport("Failed", stderr="Error: No such container")])
    executor, _ = make_executor(service)

    with pytest.raises(ExecutionError) as exc:
        await executor.execute("list")
    assert not isinstance(exc.value, ExecutionTimeout)
    assert exc.value.message == "Error: No such container"


@pytest.mark.asyncio
async def test_failed_status_without_stderr():
    service = ScriptedService([InvocationReport("Failed")])
    executor, _ = make_executor(service)

    with pytest.raises(ExecutionError, match="Command execution failed"):
        await executor.execute("list")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["Cancelled", "TimedOut", "Cancelling", "Undeliverable"])
async def test_other_statuses_fail_naming_status(status):
    service = ScriptedService([InvocationReport(status, status_details="details here")])
    executor, _ = make_executor(service)

    with pytest.raises(ExecutionError) as exc:
        await executor.execute("list")
    assert not isinstance(exc.value, ExecutionTimeout)
    assert exc.value.message == f"Command {status}: details here"
    assert service.polls == 1


@pytest.mark.asyncio
async def test_submission_failure_is_not_retried():
    service = ScriptedService([InvocationReport("Success")])
    service.submit = AsyncMock(side_effect=RuntimeError("AccessDenied"))
    executor, sleep = make_executor(service)

    with pytest.raises(UpstreamUnavailable):
        await executor.execute("list")
    service.submit.assert_awaited_once()
    assert service.polls == 0
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_invocation_id_is_fatal():
    service = ScriptedService([InvocationReport("Success")], invocation_id="")
    executor, _ = make_executor(service)

    with pytest.raises(UpstreamUnavailable, match="no command ID"):
        await executor.execute("list")


@pytest.mark.asyncio
async def test_revalidates_before_dispatch():
    service = ScriptedService([InvocationReport("Success")])
    executor, _ = make_executor(service)

    with pytest.raises(CommandValidationError):
        await executor.execute("op", "steve")
    assert service.submitted == []


@pytest.mark.asyncio
async def test_missing_instance_id():
    executor = RemoteCommandExecutor(ScriptedService([]), instance_id=None, sleep=AsyncMock())
    with pytest.raises(UpstreamUnavailable, match="EC2_INSTANCE_ID"):
        await executor.execute("list")


@pytest.mark.asyncio
async def test_submitted_command_line_is_quoted():
    service = ScriptedService([InvocationReport("Success", stdout="ok")])
    executor, _ = make_executor(service)

    await executor.execute("say", "Don't panic!")

    instance_id, command_line, timeout = service.submitted[0]
    assert instance_id == "i-0abc"
    assert timeout == 30
    assert command_line == "docker exec blockhaven-mc rcon-cli say 'Don'\"'\"'t panic!'"


def test_build_command_line_without_args():
    executor, _ = make_executor(ScriptedService([]))
    assert executor.build_command_line("whitelist list") == "docker exec blockhaven-mc rcon-cli whitelist list"
    assert executor.build_command_line("whitelist add", "Steve") == "docker exec blockhaven-mc rcon-cli whitelist add Steve"


@pytest.mark.asyncio
async def test_delayed_delivery_keeps_polling():
    service = ScriptedService([
        InvocationReport("Delayed"),
        InvocationReport("Success", stdout="Saved the game"),
    ])
    executor, _ = make_executor(service)

    assert await executor.execute("save-all") == "Saved the game"
    assert service.polls == 2


@pytest.mark.asyncio
async def test_terminal_status_without_details_names_status_only():
    service = ScriptedService([InvocationReport("TimedOut")])
    executor, _ = make_executor(service)

    with pytest.raises(ExecutionError) as exc:
        await executor.execute("list")
    assert exc.value.message == "Command TimedOut"


def new_invocation():
    return RemoteInvocation(invocation_id="cmd-123", instance_id="i-0abc", command_text="rcon-cli list")


@pytest.mark.asyncio
async def test_poll_records_final_phase():
    invocation = new_invocation()
    assert invocation.phase is ExecutorPhase.DISPATCHED
    executor, _ = make_executor(ScriptedService([InvocationReport("Pending"), InvocationReport("Success", stdout="ok")]))
    assert await executor.poll(invocation) == "ok"
    assert invocation.phase is ExecutorPhase.SUCCEEDED
    assert invocation.attempts == 2

    invocation = new_invocation()
    executor, _ = make_executor(ScriptedService([InvocationReport("Cancelled")]))
    with pytest.raises(ExecutionError):
        await executor.poll(invocation)
    assert invocation.phase is ExecutorPhase.FAILED
    assert invocation.attempts == 1

    invocation = new_invocation()
    executor, _ = make_executor(ScriptedService([InvocationReport("InProgress")]), max_attempts=3)
    with pytest.raises(ExecutionTimeout):
        await executor.poll(invocation)
    assert invocation.phase is ExecutorPhase.TIMED_OUT
    assert invocation.attempts == 3


@pytest.mark.parametrize("status,terminal", [
    ("Pending", False),
    ("InProgress", False),
    ("Delayed", False),
    ("Success", True),
    ("Failed", True),
    ("TimedOut", True),
    ("Cancelled", True),
    ("Cancelling", False),
])
def test_status_terminality(status, terminal):
    assert InvocationStatus.parse(status).is_terminal is terminal
