"""Terraform/OpenTofu actions run against a fixture directory."""

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from common import ActionResult, format_vars, run_command

logger = logging.getLogger(__name__)


def _terraform_env(extra: dict) -> dict:
    """Subprocess environment: caller's environment plus non-interactive flags."""
    return {**os.environ, 'TF_IN_AUTOMATION': '1', 'TF_INPUT': '0', **extra}


def _run_terraform(name: str, cmd: list[str], cwd: Path, timeout: int, env: dict) -> ActionResult:
    """Run one terraform command and wrap the outcome."""
    start = time.time()
    verb = cmd[1] if len(cmd) > 1 else cmd[0]
    result = run_command(cmd, cwd=cwd, timeout=timeout, env=_terraform_env(env))

    if result.launch_failed:
        return ActionResult(
            success=False,
            message=f"Could not launch {cmd[0]}: {result.output}",
            duration=time.time() - start,
            output=result.output,
            launch_failed=True
        )

    if not result.ok:
        message = f"{os.path.basename(cmd[0])} {verb} failed (exit {result.returncode})"
        if result.timed_out:
            message = f"{os.path.basename(cmd[0])} {verb} timed out after {timeout}s"
        return ActionResult(
            success=False,
            message=message,
            duration=time.time() - start,
            output=result.output
        )

    logger.debug(f"[{name}] {verb} completed")
    return ActionResult(
        success=True,
        message=f"{verb} completed for {cwd}",
        duration=time.time() - start,
        output=result.output
    )


@dataclass
class TerraformInitAction:
    """Run terraform init in the template directory."""
    name: str
    template_path: Path
    binary: str = 'terraform'
    timeout: int = 300
    env: dict = field(default_factory=dict)

    def run(self) -> ActionResult:
        """Execute terraform init."""
        logger.info(f"[{self.name}] Running {self.binary} init in {self.template_path}...")
        cmd = [self.binary, 'init', '-input=false', '-no-color']
        return _run_terraform(self.name, cmd, Path(self.template_path), self.timeout, self.env)


@dataclass
class TerraformApplyAction:
    """Run terraform apply with -var inputs."""
    name: str
    template_path: Path
    vars: dict = field(default_factory=dict)
    binary: str = 'terraform'
    timeout: int = 3600
    env: dict = field(default_factory=dict)

    def run(self) -> ActionResult:
        """Execute terraform apply."""
        logger.info(f"[{self.name}] Running {self.binary} apply in {self.template_path}...")
        cmd = [self.binary, 'apply', '-auto-approve', '-input=false', '-no-color'] + format_vars(self.vars)
        return _run_terraform(self.name, cmd, Path(self.template_path), self.timeout, self.env)


@dataclass
class TerraformDestroyAction:
    """Run terraform destroy with the same -var inputs as the apply."""
    name: str
    template_path: Path
    vars: dict = field(default_factory=dict)
    binary: str = 'terraform'
    timeout: int = 3600
    env: dict = field(default_factory=dict)

    def run(self) -> ActionResult:
        """Execute terraform destroy."""
        logger.info(f"[{self.name}] Running {self.binary} destroy in {self.template_path}...")
        cmd = [self.binary, 'destroy', '-auto-approve', '-input=false', '-no-color'] + format_vars(self.vars)
        return _run_terraform(self.name, cmd, Path(self.template_path), self.timeout, self.env)
