"""Static analysis of Typst packages."""

from .models import Diagnostic, Report, Severity, Span

__all__ = ["Diagnostic", "Report", "Severity", "Span"]
