"""Apply-cycle reporting."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from common import slugify


@dataclass
class PhaseResult:
    """Result of a cycle phase."""
    name: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class CycleReport:
    """Collects phase results for one apply/destroy cycle.

    Files are only written when report_dir is set.
    """
    test_name: str
    template_path: str = ''
    report_dir: Optional[Path] = None
    phases: list[PhaseResult] = field(default_factory=list)
    retry_reasons: list[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False

    _phase_start: Optional[datetime] = field(default=None, repr=False)

    def start(self):
        """Mark cycle start."""
        self.started_at = datetime.now()
        if self.report_dir:
            Path(self.report_dir).mkdir(parents=True, exist_ok=True)

    def start_phase(self, name: str):
        """Mark phase start."""
        self._phase_start = datetime.now()

    def pass_phase(self, name: str, message: str = ''):
        """Record passed phase."""
        self._record_phase(name, 'passed', message)

    def fail_phase(self, name: str, message: str = ''):
        """Record failed phase."""
        self._record_phase(name, 'failed', message)

    def skip_phase(self, name: str, message: str = ''):
        """Record skipped phase."""
        self.phases.append(PhaseResult(name=name, status='skipped', message=message))

    def _record_phase(self, name: str, status: str, message: str):
        now = datetime.now()
        duration = (now - self._phase_start).total_seconds() if self._phase_start else 0.0
        self.phases.append(PhaseResult(
            name=name,
            status=status,
            message=message,
            duration=duration,
            started_at=self._phase_start,
            finished_at=now
        ))
        self._phase_start = None

    def phase_count(self, name: str) -> int:
        """Number of recorded runs of a phase (skips excluded)."""
        return sum(1 for p in self.phases if p.name == name and p.status != 'skipped')

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self, success: bool):
        """Finalize report and write files if a report directory is set."""
        self.finished_at = datetime.now()
        self.success = success
        if self.report_dir:
            self._write_json()
            self._write_markdown()

    def to_dict(self) -> dict:
        """Return report as dictionary for JSON output."""
        result = {
            'test_name': self.test_name,
            'template_path': self.template_path,
            'success': self.success,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': round(self.duration, 1),
            'retry_reasons': list(self.retry_reasons),
            'phases': [
                {
                    'name': p.name,
                    'status': p.status,
                    'message': p.message,
                    'duration': round(p.duration, 1),
                }
                for p in self.phases
            ]
        }

        # Include error message on failure
        if not self.success:
            for p in self.phases:
                if p.status == 'failed' and p.message:
                    result['error'] = p.message
                    break

        return result

    def _write_json(self):
        with open(self._report_filename('json'), 'w', encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def _write_markdown(self):
        status = 'PASSED' if self.success else 'FAILED'

        lines = [
            f"# {self.test_name}",
            "",
            f"**Template**: {self.template_path}",
            f"**Status**: {status}",
            f"**Date**: {self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'}",
            f"**Duration**: {self.duration:.1f}s",
            "",
            "## Phases",
            "",
            "| Phase | Status | Duration | Message |",
            "|-------|--------|----------|---------|",
        ]

        for p in self.phases:
            # Keep multi-line tool errors inside one table row
            message = p.message.replace('\n', ' ').replace('|', '\\|')
            lines.append(f"| {p.name} | {p.status} | {p.duration:.1f}s | {message} |")

        if self.retry_reasons:
            lines.extend(["", "## Retries", ""])
            lines.extend(f"- {reason}" for reason in self.retry_reasons)

        lines.extend(["", "---", f"Generated: {datetime.now().isoformat()}"])

        with open(self._report_filename('md'), 'w', encoding="utf-8") as f:
            f.write('\n'.join(lines))

    def _report_filename(self, ext: str) -> Path:
        """Generate report filename.

        Includes the test name slug to avoid collisions when tests run in parallel.
        """
        timestamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        status = 'passed' if self.success else 'failed'
        slug = slugify(self.test_name)
        if slug:
            return Path(self.report_dir) / f"{timestamp}.{slug}.{status}.{ext}"
        return Path(self.report_dir) / f"{timestamp}.{status}.{ext}"
