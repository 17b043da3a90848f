"""Renewal orchestration, reload coordination, and the scheduling loop."""
from __future__ import annotations

from cert_monitor.controller.loop import SchedulingLoop
from cert_monitor.controller.orchestrator import BatchOptions, BatchResult, RenewalOrchestrator
from cert_monitor.controller.reload import Reloader, ShellReloader
from cert_monitor.controller.status import CertStatus, collect_status

__all__ = [
    "BatchOptions",
    "BatchResult",
    "CertStatus",
    "Reloader",
    "RenewalOrchestrator",
    "SchedulingLoop",
    "ShellReloader",
    "collect_status",
]
