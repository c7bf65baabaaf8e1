"""Aggregate independent detector signals into a SaveContext."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from snapback.domain.types import FileContext, SaveContext
from snapback.utils.time import now_ms

HIGH_RISK_AI_CONFIDENCE = 0.7
HIGH_RISK_SCORE = 60
HIGH_RISK_FILE_COUNT = 3


@dataclass(slots=True)
class AISignal:
    detected: bool = False
    confidence: float = 0.0
    tool_name: str | None = None
    indicators: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RiskSignal:
    score: float = 0.0
    factors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BurstSignal:
    detected: bool = False
    file_count: int = 0
    time_window_ms: int = 0


@dataclass(slots=True)
class CriticalFileSignal:
    detected: bool = False
    count: int = 0
    files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SessionSignal:
    session_id: str = ""
    file_count: int = 0
    duration_ms: int = 0


@dataclass(slots=True)
class AggregatedSignals:
    ai: AISignal
    risk: RiskSignal
    burst: BurstSignal
    critical: CriticalFileSignal
    session: SessionSignal


class SignalAggregator:
    """Hold the latest value of each detector signal until the next aggregate."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._ai = AISignal()
        self._risk = RiskSignal()
        self._burst = BurstSignal()
        self._critical = CriticalFileSignal()
        self._session = SessionSignal()

    def set_ai_signal(self, signal: AISignal) -> None:
        self._ai = signal

    def set_risk_signal(self, signal: RiskSignal) -> None:
        self._risk = signal

    def set_burst_signal(self, signal: BurstSignal) -> None:
        self._burst = signal

    def set_critical_file_signal(self, signal: CriticalFileSignal) -> None:
        self._critical = signal

    def set_session_signal(self, signal: SessionSignal) -> None:
        self._session = signal

    def get_signals(self) -> AggregatedSignals:
        return AggregatedSignals(
            ai=self._ai,
            risk=self._risk,
            burst=self._burst,
            critical=self._critical,
            session=self._session,
        )

    def aggregate(self, files: Sequence[FileContext], repo_id: str, timestamp: int | None = None) -> SaveContext:
        return SaveContext(
            repo_id=repo_id,
            timestamp=timestamp if timestamp is not None else now_ms(),
            files=tuple(files),
            ai_detected=self._ai.detected,
            ai_tool_name=self._ai.tool_name,
            ai_confidence=self._ai.confidence,
            session_id=self._session.session_id,
            session_file_count=self._session.file_count,
            session_duration_ms=self._session.duration_ms,
            risk_score=self._risk.score,
            burst_detected=self._burst.detected,
            contains_critical_files=self._critical.detected,
            critical_file_count=self._critical.count,
        )

    def _heuristics(self) -> list[bool]:
        return [
            self._ai.detected and self._ai.confidence >= HIGH_RISK_AI_CONFIDENCE,
            self._risk.score >= HIGH_RISK_SCORE,
            self._burst.detected and self._burst.file_count >= HIGH_RISK_FILE_COUNT,
            self._critical.detected and self._critical.count > 0,
            self._session.file_count >= HIGH_RISK_FILE_COUNT,
        ]

    def is_high_risk(self) -> bool:
        """Auxiliary UI hint; the decision engine does not consult it."""
        ai_risk, score_risk, burst_risk, critical_risk, _ = self._heuristics()
        return ai_risk or score_risk or (burst_risk and critical_risk)

    def get_signal_strength(self) -> int:
        return sum(self._heuristics())


__all__ = [
    "AISignal",
    "RiskSignal",
    "BurstSignal",
    "CriticalFileSignal",
    "SessionSignal",
    "AggregatedSignals",
    "SignalAggregator",
]
