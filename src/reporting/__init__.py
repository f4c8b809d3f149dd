"""Apply-cycle reporting."""

from reporting.report import CycleReport, PhaseResult

__all__ = ['CycleReport', 'PhaseResult']
