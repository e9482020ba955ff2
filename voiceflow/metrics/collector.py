"""
Performance metrics collection and analysis for VoiceFlow sessions.
"""

import json
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Any
import structlog

logger = structlog.get_logger()


@dataclass
class LatencyMetrics:
    """Latency statistics for a list of samples."""
    min: float
    max: float
    avg: float
    p50: float
    p95: float
    p99: float
    samples: int


@dataclass
class SessionMetrics:
    """Metrics for a single conversation session."""
    session_id: str
    start_time: datetime
    end_time: Optional[datetime]
    total_exchanges: int
    inference_latencies: List[float]
    errors: List[Dict[str, Any]]
    interruptions: int


class MetricsCollector:
    """
    Collects inference latency, completed exchanges, errors and user
    interruptions for the running session, and aggregates saved sessions.
    """

    def __init__(self, storage_path: Optional[Path] = None):
        self.storage_path = Path(storage_path) if storage_path else Path.home() / ".voiceflow" / "metrics"
        self.storage_path.mkdir(parents=True, exist_ok=True)

        self.current_session: Optional[SessionMetrics] = None
        self.session_start_time = None

    def start_session(self, session_id: str) -> None:
        """Start a new metrics collection session."""
        logger.debug("Starting metrics collection", session_id=session_id)

        self.current_session = SessionMetrics(
            session_id=session_id,
            start_time=datetime.now(),
            end_time=None,
            total_exchanges=0,
            inference_latencies=[],
            errors=[],
            interruptions=0,
        )
        self.session_start_time = time.time()

    def end_session(self) -> None:
        """End the current metrics collection session."""
        if not self.current_session:
            logger.warning("No active session to end")
            return

        self.current_session.end_time = datetime.now()
        logger.debug("Ending metrics collection",
                     session_id=self.current_session.session_id,
                     exchanges=self.current_session.total_exchanges)

    def record_inference_latency(self, latency_ms: float) -> None:
        """Record question-to-answer latency."""
        if self.current_session:
            self.current_session.inference_latencies.append(latency_ms)

    def record_exchange(self) -> None:
        """Record a successful question/answer exchange."""
        if self.current_session:
            self.current_session.total_exchanges += 1

    def record_error(self, component: str, error: str, metadata: Optional[Dict] = None) -> None:
        """Record an error occurrence."""
        if self.current_session:
            self.current_session.errors.append({
                "timestamp": datetime.now().isoformat(),
                "component": component,
                "error": error,
                "metadata": metadata or {},
            })

    def record_interruption(self) -> None:
        """Record the user stopping playback."""
        if self.current_session:
            self.current_session.interruptions += 1

    def _calculate_latency_stats(self, latencies: List[float]) -> LatencyMetrics:
        """Calculate statistical metrics for a list of latencies."""
        if not latencies:
            return LatencyMetrics(0, 0, 0, 0, 0, 0, 0)

        sorted_latencies = sorted(latencies)
        count = len(sorted_latencies)

        def percentile(p: float) -> float:
            index = min(int(p * count), count - 1)
            return sorted_latencies[index]

        return LatencyMetrics(
            min=sorted_latencies[0],
            max=sorted_latencies[-1],
            avg=sum(latencies) / count,
            p50=percentile(0.5),
            p95=percentile(0.95),
            p99=percentile(0.99),
            samples=count,
        )

    def _errors_by_component(self, errors: List[Dict[str, Any]]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for error in errors:
            counts[error["component"]] = counts.get(error["component"], 0) + 1
        return counts

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of current session metrics."""
        if not self.current_session:
            return {"error": "No active session"}

        session_duration = 0.0
        if self.session_start_time:
            session_duration = time.time() - self.session_start_time

        session = self.current_session
        return {
            "session_id": session.session_id,
            "session_duration_seconds": session_duration,
            "total_exchanges": session.total_exchanges,
            "inference_latency_ms": asdict(self._calculate_latency_stats(session.inference_latencies)),
            "total_errors": len(session.errors),
            "errors_by_component": self._errors_by_component(session.errors),
            "interruptions": session.interruptions,
        }

    def save_metrics(self) -> Optional[Path]:
        """Save current session metrics to storage."""
        if not self.current_session:
            logger.warning("No session to save")
            return None

        filename = f"session_{self.current_session.session_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        filepath = self.storage_path / filename

        session_dict = asdict(self.current_session)
        session_dict["start_time"] = self.current_session.start_time.isoformat()
        session_dict["end_time"] = (
            self.current_session.end_time.isoformat() if self.current_session.end_time else None
        )

        try:
            with open(filepath, "w") as f:
                json.dump(session_dict, f, indent=2)
        except OSError as e:
            logger.error("Failed to save metrics", error=str(e))
            return None

        logger.info("Metrics saved", filepath=str(filepath))
        return filepath

    def _load_file(self, filepath: Path) -> SessionMetrics:
        with open(filepath, "r") as f:
            data = json.load(f)

        data["start_time"] = datetime.fromisoformat(data["start_time"])
        if data["end_time"]:
            data["end_time"] = datetime.fromisoformat(data["end_time"])
        return SessionMetrics(**data)

    def generate_report(self, days: int = 7) -> Dict[str, Any]:
        """Aggregate saved session metrics from the last ``days`` days."""
        cutoff_date = datetime.now() - timedelta(days=days)

        sessions = []
        for filepath in self.storage_path.glob("session_*.json"):
            if datetime.fromtimestamp(filepath.stat().st_mtime) < cutoff_date:
                continue
            try:
                sessions.append(self._load_file(filepath))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("Failed to load session file",
                               filepath=str(filepath), error=str(e))

        if not sessions:
            return {
                "period_days": days,
                "total_sessions": 0,
                "total_exchanges": 0,
                "message": "No data available for the specified period",
            }

        all_latencies: List[float] = []
        all_errors: List[Dict[str, Any]] = []
        total_exchanges = 0
        total_interruptions = 0

        for session in sessions:
            all_latencies.extend(session.inference_latencies)
            all_errors.extend(session.errors)
            total_exchanges += session.total_exchanges
            total_interruptions += session.interruptions

        return {
            "period_days": days,
            "total_sessions": len(sessions),
            "total_exchanges": total_exchanges,
            "total_errors": len(all_errors),
            "errors_by_component": self._errors_by_component(all_errors),
            "total_interruptions": total_interruptions,
            "error_rate": len(all_errors) / max(1, total_exchanges),
            "interruption_rate": total_interruptions / max(1, total_exchanges),
            "inference_latency_ms": asdict(self._calculate_latency_stats(all_latencies)),
        }
