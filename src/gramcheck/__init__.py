"""gramcheck - sentence-level grammar and spelling checker."""

from .models import CheckReport, CheckResult, Correction, ErrorType, Sentence, Severity
from .orchestrator import CancellationToken, CorrectionOrchestrator, check_text

__all__ = [
    "CancellationToken",
    "CheckReport",
    "CheckResult",
    "Correction",
    "CorrectionOrchestrator",
    "ErrorType",
    "Sentence",
    "Severity",
    "check_text",
]
