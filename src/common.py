"""Common utilities and types for the test harness."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a subprocess invocation.

    output holds stdout and stderr interleaved, as the tool printed them.
    launch_failed is set when the process could not be started at all
    (binary missing, permission denied); returncode is -1 in that case.
    """
    returncode: int
    output: str = ''
    launch_failed: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.launch_failed


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    output: str = ''
    launch_failed: bool = False


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    env: Optional[dict] = None
) -> CommandResult:
    """Run a command and return its combined output and exit status."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors='replace',  # Tool output is not guaranteed to be UTF-8
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return CommandResult(returncode=result.returncode, output=result.stdout or '')
    except subprocess.TimeoutExpired as e:
        # Partial output arrives as bytes even in text mode
        partial = e.output or ''
        if isinstance(partial, bytes):
            partial = partial.decode(errors='replace')
        if partial and not partial.endswith('\n'):
            partial += '\n'
        return CommandResult(
            returncode=-1,
            output=f"{partial}Command timed out after {timeout}s",
            timed_out=True
        )
    except OSError as e:
        return CommandResult(returncode=-1, output=str(e), launch_failed=True)


def format_vars(variables: dict) -> list[str]:
    """Render a variable map as repeated -var arguments.

    Keys are emitted in sorted order so command lines are reproducible.
    """
    args = []
    for key in sorted(variables):
        args.extend(['-var', f'{key}={variables[key]}'])
    return args


def slugify(value: str) -> str:
    """Reduce a free-form label to a filename-safe slug."""
    slug = ''.join(c if c.isalnum() else '-' for c in value.lower())
    while '--' in slug:
        slug = slug.replace('--', '-')
    return slug.strip('-')
