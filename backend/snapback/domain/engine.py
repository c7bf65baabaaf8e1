"""Deterministic protection decisions from aggregated save signals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from snapback.core.config import DecisionConfig
from snapback.core.errors import ContextValidationError
from snapback.domain.types import DecisionContext, DecisionReason, ProtectionDecision, SaveContext

AI_SNAPSHOT_CONFIDENCE = 0.8
AI_NOTIFY_CONFIDENCE = 0.5

# (reason, priority tier); lower tiers are listed first in a decision
_REASON_TIERS: tuple[tuple[DecisionReason, int], ...] = (
    ("ai_detected", 1),
    ("risk_threshold", 1),
    ("critical_file", 1),
    ("burst_pattern", 2),
)


@dataclass(frozen=True, slots=True)
class _Signals:
    ai_detected: bool
    ai_confidence: float
    risk_score: float
    burst_detected: bool
    burst_file_count: int
    critical_detected: bool
    critical_file_count: int

    @classmethod
    def from_context(cls, context: SaveContext) -> "_Signals":
        return cls(
            ai_detected=context.ai_detected,
            ai_confidence=context.ai_confidence or 0.0,
            risk_score=context.risk_score,
            burst_detected=context.burst_detected,
            burst_file_count=context.session_file_count,
            critical_detected=context.contains_critical_files,
            critical_file_count=context.critical_file_count,
        )


class DecisionEngine:
    """Combine AI, risk, burst, session and critical-file signals into one decision.

    The engine is pure: no I/O, no clock. Given the same context and config it
    always returns the same decision.
    """

    def __init__(self, config: DecisionConfig | None = None) -> None:
        self._config = config or DecisionConfig()

    @property
    def config(self) -> DecisionConfig:
        return self._config

    def update_config(self, **changes: Any) -> DecisionConfig:
        """Apply partial config changes; values are clamped and re-validated."""
        self._config = self._config.merged(**changes)
        return self._config

    def make_decision(self, context: SaveContext) -> ProtectionDecision:
        signals = _Signals.from_context(context)
        triggered = self._triggered_rules(signals)
        create_snapshot = any(triggered.values())
        show_notification = self._should_notify(signals)
        reasons = self._attribute_reasons(triggered, create_snapshot)
        return ProtectionDecision(
            create_snapshot=create_snapshot,
            show_notification=show_notification,
            reasons=reasons,
            confidence=self._confidence(signals, create_snapshot),
            summary=self._summary(reasons, signals),
            context=DecisionContext(
                risk_score=context.risk_score,
                session_id=context.session_id,
                files_in_session=context.session_file_count,
                critical_file_count=context.critical_file_count,
                ai_tool_name=context.ai_tool_name,
            ),
        )

    def _triggered_rules(self, signals: _Signals) -> dict[DecisionReason, bool]:
        return {
            "ai_detected": signals.ai_detected and signals.ai_confidence >= AI_SNAPSHOT_CONFIDENCE,
            "risk_threshold": signals.risk_score >= self._config.risk_threshold,
            "critical_file": signals.critical_detected and signals.critical_file_count > 0,
            "burst_pattern": signals.burst_detected
            and signals.burst_file_count >= self._config.min_files_for_burst,
        }

    def _should_notify(self, signals: _Signals) -> bool:
        if signals.risk_score >= self._config.notify_threshold:
            return True
        return signals.ai_detected and signals.ai_confidence > AI_NOTIFY_CONFIDENCE

    @staticmethod
    def _attribute_reasons(
        triggered: dict[DecisionReason, bool], create_snapshot: bool
    ) -> tuple[DecisionReason, ...]:
        if not create_snapshot:
            return ()
        ordered = sorted(
            (tier, index, reason)
            for index, (reason, tier) in enumerate(_REASON_TIERS)
            if triggered.get(reason)
        )
        reasons = tuple(reason for _, _, reason in ordered)
        return reasons or ("fallback",)

    def _confidence(self, signals: _Signals, create_snapshot: bool) -> float:
        """0.4 * AI confidence + 0.4 * normalized risk + 0.2 * share of the four signals."""
        if not create_snapshot:
            return 0.0
        confidence = 0.0
        if signals.ai_detected:
            confidence += signals.ai_confidence * 0.4
        confidence += min(1.0, signals.risk_score / 100) * 0.4
        signal_count = sum(
            (
                signals.ai_detected,
                signals.risk_score >= self._config.notify_threshold,
                signals.burst_detected,
                signals.critical_detected,
            )
        )
        confidence += min(1.0, signal_count / 4) * 0.2
        return min(1.0, round(confidence, 2))

    @staticmethod
    def _summary(reasons: tuple[DecisionReason, ...], signals: _Signals) -> str:
        phrases = {
            "ai_detected": lambda: f"AI detected ({round(signals.ai_confidence * 100)}%)",
            "risk_threshold": lambda: f"High risk score ({_format_number(signals.risk_score)}/100)",
            "critical_file": lambda: f"{signals.critical_file_count} critical file(s) modified",
            "burst_pattern": lambda: f"Rapid changes detected ({signals.burst_file_count} files)",
        }
        return ", ".join(phrases[reason]() for reason in reasons if reason in phrases)

    def validate_context(self, context: SaveContext) -> None:
        """Raise ContextValidationError when ``context`` is malformed."""
        if not context.repo_id:
            raise ContextValidationError("SaveContext missing repo_id")
        if not isinstance(context.timestamp, (int, float)) or context.timestamp <= 0:
            raise ContextValidationError("SaveContext timestamp must be positive")
        if not isinstance(context.files, (list, tuple)):
            raise ContextValidationError("SaveContext files must be a list")
        if context.ai_confidence is not None and not 0 <= context.ai_confidence <= 1:
            raise ContextValidationError("SaveContext ai_confidence must be between 0 and 1")
        if not 0 <= context.risk_score <= 100:
            raise ContextValidationError("SaveContext risk_score must be between 0 and 100")
        if context.session_file_count < 0:
            raise ContextValidationError("SaveContext session_file_count must be non-negative")
        if context.session_duration_ms < 0:
            raise ContextValidationError("SaveContext session_duration_ms must be non-negative")
        if context.critical_file_count < 0:
            raise ContextValidationError("SaveContext critical_file_count must be non-negative")
        if not context.session_id:
            raise ContextValidationError("SaveContext missing session_id")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


__all__ = ["DecisionEngine", "AI_SNAPSHOT_CONFIDENCE", "AI_NOTIFY_CONFIDENCE"]
