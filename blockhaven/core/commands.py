"""RCON command whitelist.

Only the commands listed in COMMAND_SPECS may ever reach the remote shell.
Arguments are matched against a per-command grammar with ``fullmatch`` so
trailing newlines or shell metacharacters are rejected outright.
"""
import re
from dataclasses import dataclass
from typing import Dict, Optional, Pattern, Tuple

PLAYER_NAME = re.compile(r"[a-zA-Z0-9_]{3,16}")
BROADCAST_TEXT = re.compile(r"[a-zA-Z0-9_ !?.,'\"-]{1,100}")


@dataclass(frozen=True)
class CommandSpec:
    name: str
    requires_argument: bool = False
    pattern: Optional[Pattern[str]] = None
    example: Optional[str] = None

    @property
    def accepts_argument(self) -> bool:
        return self.pattern is not None


COMMAND_SPECS: Dict[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("whitelist add", requires_argument=True, pattern=PLAYER_NAME, example="PlayerName"),
        CommandSpec("whitelist remove", requires_argument=True, pattern=PLAYER_NAME, example="PlayerName"),
        CommandSpec("whitelist list"),
        CommandSpec("list"),
        CommandSpec("save-all"),
        CommandSpec("say", requires_argument=True, pattern=BROADCAST_TEXT, example="Hello everyone!"),
    )
}

ALLOWED_COMMANDS: Tuple[str, ...] = tuple(COMMAND_SPECS)


@dataclass(frozen=True)
class CommandValidation:
    valid: bool
    error: Optional[str] = None


def validate_command(command: Optional[str], args: Optional[str] = None) -> CommandValidation:
    """Check a command name and optional argument against the whitelist."""
    spec = COMMAND_SPECS.get(command) if isinstance(command, str) else None
    if spec is None:
        return CommandValidation(
            False, f"Command not allowed. Allowed commands: {', '.join(ALLOWED_COMMANDS)}"
        )

    if args is not None and not isinstance(args, str):
        return CommandValidation(False, "Argument must be a string")

    if spec.accepts_argument:
        if spec.requires_argument and not args:
            return CommandValidation(False, f"This command requires an argument. Example: {spec.example}")
        if args and not spec.pattern.fullmatch(args):
            return CommandValidation(False, f"Invalid argument format. Example: {spec.example}")
    elif args:
        return CommandValidation(False, "This command does not accept arguments")

    return CommandValidation(True)
