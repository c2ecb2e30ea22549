"""Tests for command library."""

import pytest

from flux_bootstrap.command import Command, run
from flux_bootstrap.exceptions import CommandException, OcmException


async def test_command() -> None:
    """Test stdout parsing of a command."""
    result = await run(Command(["echo", "Hello"]))
    assert result == "Hello\n"


async def test_command_stdin() -> None:
    """Test passing input to a command."""
    result = await run(Command(["cat"]), b"Hello")
    assert result == "Hello"


async def test_failed_command() -> None:
    """Test a failing command."""
    with pytest.raises(CommandException, match="return code 1"):
        await run(Command(["/bin/false"]))


async def test_failed_command_exception_type() -> None:
    """Test the exception type and output of a failing command."""
    with pytest.raises(OcmException, match="boom"):
        await run(Command(["sh", "-c", "echo boom >&2; exit 3"], exc=OcmException))


async def test_command_timeout() -> None:
    """Test a command that does not finish in time."""
    with pytest.raises(CommandException, match="timed out"):
        await run(Command(["sleep", "5"], timeout=0.1))


async def test_command_env() -> None:
    """Test extra environment variables of a command."""
    result = await run(Command(["sh", "-c", "echo $GREETING"], env={"GREETING": "hi"}))
    assert result == "hi\n"
