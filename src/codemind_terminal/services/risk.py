"""Pattern-based risk classification of literal shell commands."""

from __future__ import annotations

import logging
import re

from codemind_terminal.storage.models import RiskLevel

logger = logging.getLogger(__name__)

# Checked first; any hit short-circuits to DANGEROUS.
DANGEROUS_PATTERNS: list[tuple[str, str]] = [
    (r"\brm\s+-[a-z]*r[a-z]*f", "Recursive forced deletion"),
    (r"\brm\s+-[a-z]*f[a-z]*r", "Recursive forced deletion"),
    (r"\bsudo\b", "Privilege escalation"),
    (r"\bchmod\s+(-[a-z]+\s+)*0?777\b", "World-writable permission change"),
    (r"\bshutdown\b", "System power control"),
    (r"\breboot\b", "System power control"),
    (r"\bmkfs(\.\w+)?\b", "Filesystem format"),
    (r"\bdd\s+if=", "Raw disk write"),
    (r">\s*/dev/sd", "Redirection into a block device"),
    (r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}", "Fork bomb"),
    (r"\bcurl\b.*\|\s*(sudo\s+)?(ba|z|da)?sh\b", "Remote script piped into a shell"),
    (r"\bwget\b.*\|\s*(sudo\s+)?(ba|z|da)?sh\b", "Remote script piped into a shell"),
]

MODERATE_PATTERNS: list[tuple[str, str]] = [
    (r"\brm\s+", "File deletion"),
    (r"\bgit\s+push\b", "Publishes history to a remote"),
    (r"\bgit\s+reset\b", "Rewrites local history"),
    (r"\bnpm\s+(install|i)\b", "Dependency installation"),
    (r"\byarn\s+(install|add)\b", "Dependency installation"),
    (r"\bpip3?\s+install\b", "Dependency installation"),
    (r"\bapt(-get)?\s+install\b", "Dependency installation"),
    (r"\bbrew\s+install\b", "Dependency installation"),
    (r"\bchmod\b", "Permission change"),
    (r"\bchown\b", "Ownership change"),
]


def _compile(patterns: list[tuple[str, str]]) -> list[tuple[re.Pattern[str], str]]:
    compiled: list[tuple[re.Pattern[str], str]] = []
    for pattern, reason in patterns:
        try:
            compiled.append((re.compile(pattern, re.IGNORECASE), reason))
        except re.error:
            logger.error("Invalid risk pattern: %s", pattern)
    return compiled


class RiskClassifier:
    """Regex-based command risk classifier.

    The dangerous set is always consulted before the moderate set, so a
    command matching both is DANGEROUS.
    """

    def __init__(
        self,
        dangerous: list[tuple[str, str]] | None = None,
        moderate: list[tuple[str, str]] | None = None,
    ) -> None:
        self._dangerous = _compile(DANGEROUS_PATTERNS if dangerous is None else dangerous)
        self._moderate = _compile(MODERATE_PATTERNS if moderate is None else moderate)

    def explain(self, command: str) -> tuple[RiskLevel, str]:
        """Classify a command. Returns (level, reason)."""
        for compiled, reason in self._dangerous:
            if compiled.search(command):
                return RiskLevel.DANGEROUS, reason
        for compiled, reason in self._moderate:
            if compiled.search(command):
                return RiskLevel.MODERATE, reason
        return RiskLevel.SAFE, ""

    def assess(self, command: str) -> RiskLevel:
        return self.explain(command)[0]
