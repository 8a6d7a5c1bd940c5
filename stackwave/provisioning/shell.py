"""Shell command execution helper."""

import asyncio
import logging

logger = logging.getLogger(__name__)


async def _kill(proc):
    if proc is not None and proc.returncode is None:
        proc.kill()
        await proc.wait()


async def run_shell_cmd(command, dry_run=False, timeout=600, input=None, cwd=None, env=None, log_output=False):
    """Run a shell command and return (returncode, stdout, stderr).

    Args:
        command: list of command arguments
        dry_run: if True, log the command instead of executing
        timeout: maximum seconds to wait for the command
        input: optional str/bytes written to the command's stdin
        cwd: working directory for the command
        env: optional environment mapping
        log_output: if True, log stdout/stderr lines as they arrive

    Returns:
        (returncode, stdout, stderr) tuple. A timeout is reported as
        returncode 1 with the reason in stderr. Cancelling the calling task
        kills the process and re-raises CancelledError.
    """
    if dry_run:
        logger.info(f"[dry-run] {' '.join(command)}")
        return 0, "", ""

    if isinstance(input, str):
        input = input.encode()

    proc = None
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )

        if log_output:
            stdout_lines, stderr_lines = [], []

            async def _read_stream(pipe, lines, level):
                async for raw_line in pipe:
                    line = raw_line.decode().rstrip("\n")
                    logger.log(level, line)
                    lines.append(line)

            async def _feed_stdin():
                if input is not None:
                    proc.stdin.write(input)
                    await proc.stdin.drain()
                    proc.stdin.close()

            await asyncio.wait_for(
                asyncio.gather(
                    _feed_stdin(),
                    _read_stream(proc.stdout, stdout_lines, logging.INFO),
                    _read_stream(proc.stderr, stderr_lines, logging.ERROR),
                    proc.wait(),
                ),
                timeout=timeout,
            )
            return proc.returncode, "\n".join(stdout_lines), "\n".join(stderr_lines)

        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(input), timeout=timeout)
        stdout = stdout_bytes.decode() if stdout_bytes else ""
        stderr = stderr_bytes.decode() if stderr_bytes else ""
        return proc.returncode, stdout, stderr
    except TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {' '.join(command)}")
        await _kill(proc)
        return 1, "", f"timed out after {timeout}s"
    except asyncio.CancelledError:
        logger.warning(f"Cancelled, killing: {' '.join(command)}")
        await _kill(proc)
        raise
    except FileNotFoundError:
        logger.error(f"Error: '{command[0]}' not found. Is it installed and on PATH?")
        return 1, "", f"'{command[0]}' not found"
