"""Subprocess runner for engine CLIs."""

from __future__ import annotations

import asyncio
import logging
import os

from crewdispatch.models.engine import CommandSpec, ProcessOutput

logger = logging.getLogger(__name__)


class SubprocessRunner:
    """Runs a command to completion and collects its output.

    Engine runs are not cancelled by default. A *timeout* (seconds) can be
    given to kill runs that outlive it.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    async def run(self, command: CommandSpec) -> ProcessOutput:
        """Run *command* and wait for it to exit.

        Raises OSError when the program can't be started and TimeoutError
        when a configured timeout forced a kill.
        """
        env = os.environ.copy()
        if command.env:
            env.update(command.env)

        proc = await asyncio.create_subprocess_exec(
            command.program,
            *command.args,
            cwd=command.cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        logger.debug("Started %s (pid %s)", command.program, proc.pid)

        if self.timeout is None:
            stdout, stderr = await proc.communicate()
        else:
            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise TimeoutError(f"{command.program} timed out after {self.timeout:.0f}s")

        output = ProcessOutput(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if not output.ok:
            logger.warning(
                "%s exited with code %d: %s",
                command.program, output.returncode, output.stderr.strip()[-300:],
            )
        return output
