"""
Safety and observation layer.

- Guardrails: allow/block lists and ordered rules with fallback resolution
- CommonGuardrails: ready-made rules derived from conversation history
- Monitor: bounded in-memory decision log and metric series
"""

from .guardrails import (
    GuardrailConfig,
    GuardrailRule,
    Guardrails,
    Violation,
)
from .rules import CommonGuardrails
from .monitor import LogEntry, Metric, Monitor, MonitorConfig

__all__ = [
    "GuardrailConfig",
    "GuardrailRule",
    "Guardrails",
    "Violation",
    "CommonGuardrails",
    "LogEntry",
    "Metric",
    "Monitor",
    "MonitorConfig",
]
