"""Apply/retry/destroy orchestration.

One cycle runs init, then apply (retried at most once when the failure
output contains a known retryable signature), then destroy. Destroy runs
exactly once whenever an apply was attempted, whatever the apply outcome.

Retry matching is literal substring containment against the tool's raw
output. Each triggered retry appends RETRY_SENTINEL to the returned output.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from actions.terraform import TerraformApplyAction, TerraformDestroyAction, TerraformInitAction
from common import ActionResult
from config import HarnessConfig, load_harness_config
from errors import (
    DestroyError,
    HarnessError,
    InitError,
    NonRetryableApplyError,
    RetryExhaustedError,
    TemplateNotFoundError,
    ToolLaunchError,
)
from reporting import CycleReport

logger = logging.getLogger(__name__)

RETRY_SENTINEL = '**TERRAFORM-RETRY**'


@dataclass
class ApplyOptions:
    """Configuration for one apply/destroy cycle. Not reused across runs."""
    test_name: str = ''
    template_path: Optional[Path] = None
    vars: dict[str, str] = field(default_factory=dict)
    attempt_terraform_retry: bool = False
    retryable_terraform_errors: dict[str, str] = field(default_factory=dict)
    terraform_binary: str = 'terraform'
    timeout_init: int = 300
    timeout_apply: int = 3600
    timeout_destroy: int = 3600
    env: dict[str, str] = field(default_factory=dict)
    report_dir: Optional[Path] = None


def new_apply_options(config: Optional[HarnessConfig] = None) -> ApplyOptions:
    """Fresh options with defaults taken from the harness config.

    Retry stays disabled; the config's retryable_errors table is copied in so
    enabling retry is all a caller needs to do to use it.
    """
    config = config or load_harness_config()
    return ApplyOptions(
        terraform_binary=config.terraform_binary,
        timeout_init=config.timeout_init,
        timeout_apply=config.timeout_apply,
        timeout_destroy=config.timeout_destroy,
        retryable_terraform_errors=dict(config.retryable_errors),
        report_dir=config.report_dir,
    )


@dataclass
class ApplyResult:
    """Outcome of apply_and_destroy."""
    output: str = ''
    error: Optional[HarnessError] = None
    apply_attempts: int = 0
    destroy_attempts: int = 0
    retry_reasons: list[str] = field(default_factory=list)
    destroy_error: Optional[DestroyError] = None
    duration: float = 0.0
    report: Optional[CycleReport] = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def retried(self) -> bool:
        return bool(self.retry_reasons)

    def raise_for_error(self) -> None:
        """Raise the carried error, if any."""
        if self.error is not None:
            raise self.error

    def append_output(self, text: str) -> None:
        if not text:
            return
        if self.output and not self.output.endswith('\n'):
            self.output += '\n'
        self.output += text


def find_retryable_error(output: str, retryable: dict[str, str]) -> Optional[tuple[str, str]]:
    """Return the first (signature, reason) whose signature occurs in output."""
    for signature, reason in (retryable or {}).items():
        if signature and signature in output:
            return signature, reason
    return None


def _label(options: ApplyOptions) -> str:
    return options.test_name or str(options.template_path)


def _run_phase(action, phase: str, result: ApplyResult, report: CycleReport) -> ActionResult:
    """Run an action, fold its output into the result and record the phase."""
    report.start_phase(phase)
    outcome = action.run()
    result.append_output(outcome.output)
    if outcome.success:
        report.pass_phase(phase, outcome.message)
    else:
        report.fail_phase(phase, outcome.message)
    return outcome


def _init(options: ApplyOptions, result: ApplyResult, report: CycleReport) -> Optional[HarnessError]:
    """Validate the template and run init. Returns an error if the cycle cannot start."""
    name = _label(options)
    template = Path(options.template_path) if options.template_path else None
    if template is None or not template.is_dir():
        report.fail_phase('init', f"Template not found: {template}")
        return TemplateNotFoundError(f"Template path does not exist or is not a directory: {template}")

    outcome = _run_phase(TerraformInitAction(
        name=name,
        template_path=template,
        binary=options.terraform_binary,
        timeout=options.timeout_init,
        env=options.env,
    ), 'init', result, report)

    if outcome.launch_failed:
        return ToolLaunchError(outcome.message)
    if not outcome.success:
        return InitError(outcome.message)
    return None


def _apply_once(options: ApplyOptions, phase: str, result: ApplyResult, report: CycleReport) -> ActionResult:
    result.apply_attempts += 1
    return _run_phase(TerraformApplyAction(
        name=_label(options),
        template_path=Path(options.template_path),
        vars=options.vars,
        binary=options.terraform_binary,
        timeout=options.timeout_apply,
        env=options.env,
    ), phase, result, report)


def _apply_with_retry(options: ApplyOptions, result: ApplyResult, report: CycleReport) -> Optional[HarnessError]:
    """Run apply, retrying once on a retryable signature. Returns the unrecovered error."""
    name = _label(options)

    first = _apply_once(options, 'apply', result, report)
    if first.success:
        return None
    if first.launch_failed:
        return ToolLaunchError(first.message)

    if not options.attempt_terraform_retry:
        logger.error(f"[{name}] Apply failed, retry disabled")
        return NonRetryableApplyError(first.message, output=first.output)

    match = find_retryable_error(first.output, options.retryable_terraform_errors)
    if match is None:
        logger.error(f"[{name}] Apply failed with no retryable error signature in output")
        return NonRetryableApplyError(first.message, output=first.output)

    signature, reason = match
    logger.warning(f"[{name}] Retryable error detected ({signature}): {reason or 'no reason given'}")
    result.retry_reasons.append(reason or signature)
    report.retry_reasons.append(reason or signature)
    result.append_output(f"{RETRY_SENTINEL}\n")

    second = _apply_once(options, 'apply-retry', result, report)
    if second.success:
        logger.info(f"[{name}] Apply succeeded on retry")
        return None
    if second.launch_failed:
        return ToolLaunchError(second.message)
    logger.error(f"[{name}] Apply failed again after retry")
    return RetryExhaustedError(second.message, output=second.output)


def _destroy(options: ApplyOptions, result: ApplyResult, report: CycleReport) -> Optional[DestroyError]:
    result.destroy_attempts += 1
    outcome = _run_phase(TerraformDestroyAction(
        name=_label(options),
        template_path=Path(options.template_path),
        vars=options.vars,
        binary=options.terraform_binary,
        timeout=options.timeout_destroy,
        env=options.env,
    ), 'destroy', result, report)
    if outcome.success:
        return None
    return DestroyError(outcome.message, output=outcome.output)


def apply_and_destroy(options: ApplyOptions) -> ApplyResult:
    """Run init, apply (with at most one retry) and destroy.

    The returned result carries the accumulated tool output and, when the
    cycle did not succeed, the error. An apply error takes precedence over a
    destroy error; the latter is still kept on result.destroy_error.
    """
    start = time.time()
    name = _label(options)
    report = CycleReport(
        test_name=name,
        template_path=str(options.template_path or ''),
        report_dir=options.report_dir,
    )
    report.start()
    result = ApplyResult(report=report)
    logger.info(f"[{name}] Starting apply/destroy cycle for {options.template_path}")

    error = _init(options, result, report)
    if error is not None:
        logger.error(f"[{name}] {error}")
        report.skip_phase('apply', 'init failed')
        report.skip_phase('destroy', 'nothing applied')
    else:
        # Once apply has started, destroy runs even if apply raises
        try:
            error = _apply_with_retry(options, result, report)
        finally:
            destroy_error = _destroy(options, result, report)
        if destroy_error is not None:
            result.destroy_error = destroy_error
            if error is None:
                logger.error(f"[{name}] Destroy failed after successful apply: {destroy_error}")
                error = destroy_error
            else:
                logger.error(f"[{name}] Destroy also failed, resources may have leaked: {destroy_error}")

    result.error = error
    result.duration = time.time() - start
    report.finish(success=error is None)

    if error is None:
        logger.info(f"[{name}] Cycle completed in {result.duration:.1f}s")
    return result
