"""
Risk scanner — flags bundle shell strings that download and execute code.

Pure inspection: nothing is run. Examined locations are the four
lifecycle hook lists, every ``hooks.apply[*].run`` and the custom
package install script.
"""

from __future__ import annotations

import logging
import re

from gdf.core.models.bundle import Bundle
from gdf.core.models.receipt import RiskFinding

logger = logging.getLogger(__name__)


# Each pattern: (regex, reason)
_RISK_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r"\b(curl|wget)\b[^\n|;]*\|\s*(sh|bash|zsh)\b", re.IGNORECASE),
        "pipes remote content directly into a shell",
    ),
    (
        re.compile(r"\b(bash|sh|zsh)\b\s+-c\s+.*\b(curl|wget)\b", re.IGNORECASE),
        "executes downloaded content via shell -c",
    ),
    (
        re.compile(r"\$\(.*\b(curl|wget)\b.*\)", re.IGNORECASE),
        "uses command substitution with remote content",
    ),
]


def classify_command(command: str) -> str | None:
    """Reason the first matching pattern gives for *command*, if any."""
    for pattern, reason in _RISK_PATTERNS:
        if pattern.search(command):
            return reason
    return None


def _commands(bundle: Bundle) -> list[tuple[str, str]]:
    """``(location, command)`` pairs for every scanned string in *bundle*."""
    out: list[tuple[str, str]] = []
    hooks = bundle.hooks
    if hooks is not None:
        for location, commands in (
            ("hooks.pre_install", hooks.pre_install),
            ("hooks.post_install", hooks.post_install),
            ("hooks.pre_link", hooks.pre_link),
            ("hooks.post_link", hooks.post_link),
        ):
            out.extend((location, cmd) for cmd in commands)
        out.extend(("hooks.apply.run", hook.run) for hook in hooks.apply)

    if bundle.package is not None and bundle.package.custom is not None:
        out.append(("package.custom.script", bundle.package.custom.script))
    return out


def detect_high_risk_configurations(bundles: list[Bundle]) -> list[RiskFinding]:
    """Scan *bundles* and return one finding per risky command string."""
    findings: list[RiskFinding] = []
    for bundle in bundles:
        for location, command in _commands(bundle):
            if not command.strip():
                continue
            reason = classify_command(command)
            if reason is None:
                continue
            findings.append(
                RiskFinding(app=bundle.name, location=location, command=command.strip(), reason=reason)
            )

    if findings:
        logger.info("Risk scan: %d high-risk command(s) in %d bundle(s)", len(findings), len(bundles))
    return findings
