"""
In-memory monitoring of policy behaviour.

Tracks:
- State/action log entries (bounded)
- Named metric series
- Per-conversation turn counts, action counts and rewards
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from ..entities.action import Action
from ..entities.state import State, utc_timestamp

logger = logging.getLogger(__name__)

# History turns kept from each end of a logged state
HISTORY_EDGE = 5


@dataclass
class LogEntry:
    """One logged decision."""
    conversation_id: str
    turn_number: int
    state: Dict[str, Any]
    action: Dict[str, Any]
    reward: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "timestamp": self.timestamp,
            "conversationId": self.conversation_id,
            "turnNumber": self.turn_number,
            "state": self.state,
            "action": self.action,
        }
        if self.reward is not None:
            data["reward"] = self.reward
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data


@dataclass
class Metric:
    """One metric data point."""
    name: str
    value: float
    labels: Optional[Dict[str, str]] = None
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass
class ConversationTracker:
    """Running per-conversation statistics."""
    start_time: float
    turn_count: int = 0
    actions: List[str] = field(default_factory=list)
    rewards: List[float] = field(default_factory=list)


@dataclass
class MonitorConfig:
    """
    Monitor configuration.

    Attributes:
        enable_logging: Record log entries
        enable_metrics: Record metrics
        max_log_entries: Oldest entries are dropped beyond this
        max_metric_samples: Samples kept per metric series, oldest dropped first
        log_handler: Called with every new LogEntry
        metric_handler: Called with every new Metric
    """
    enable_logging: bool = True
    enable_metrics: bool = True
    max_log_entries: int = 10000
    max_metric_samples: int = 1000
    log_handler: Optional[Callable[[LogEntry], None]] = None
    metric_handler: Optional[Callable[[Metric], None]] = None


class Monitor:
    """
    Records decisions and metrics for later inspection.

    Args:
        config: Monitor configuration
        clock: Time source for conversation durations (seconds)
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or MonitorConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._logs: Deque[LogEntry] = deque(maxlen=max(1, self.config.max_log_entries))
        self._metrics: Dict[str, Deque[float]] = {}
        self._conversations: Dict[str, ConversationTracker] = {}

    def log(
        self,
        state: State,
        action: Action,
        reward: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record that `action` was taken in `state`."""
        if not self.config.enable_logging:
            return

        entry = LogEntry(
            conversation_id=state.conversation_id,
            turn_number=state.turn_number,
            state=self._serialize_state(state),
            action=action.to_dict(),
            reward=reward,
            metadata=metadata,
        )

        with self._lock:
            self._logs.append(entry)
            tracker = self._conversations.get(state.conversation_id)
            if tracker is None:
                tracker = ConversationTracker(start_time=self._clock())
                self._conversations[state.conversation_id] = tracker
            tracker.turn_count += 1
            tracker.actions.append(action.type)
            if reward is not None:
                tracker.rewards.append(reward)

        if self.config.log_handler is not None:
            self.config.log_handler(entry)

    def record_metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Append a value to the metric series `name`."""
        if not self.config.enable_metrics:
            return

        metric = Metric(name=name, value=value, labels=labels)
        with self._lock:
            series = self._metrics.get(name)
            if series is None:
                series = deque(maxlen=max(1, self.config.max_metric_samples))
                self._metrics[name] = series
            series.append(value)

        if self.config.metric_handler is not None:
            self.config.metric_handler(metric)

    @staticmethod
    def _serialize_state(state: State) -> Dict[str, Any]:
        data = state.to_dict()
        history = data["history"]
        if len(history) > 2 * HISTORY_EDGE:
            data["history"] = history[:HISTORY_EDGE] + history[-HISTORY_EDGE:]
        return data

    def get_logs(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Logged entries, oldest first; only the last `limit` if given."""
        with self._lock:
            logs = list(self._logs)
        if limit:
            return logs[-limit:]
        return logs

    def get_conversation_logs(self, conversation_id: str) -> List[LogEntry]:
        with self._lock:
            return [entry for entry in self._logs if entry.conversation_id == conversation_id]

    def get_metric(self, name: str) -> List[float]:
        with self._lock:
            return list(self._metrics.get(name, []))

    def get_metric_stats(self, name: str) -> Optional[Dict[str, float]]:
        """Count, mean, min, max and latest value of a metric, or None if unseen."""
        values = self.get_metric(name)
        if not values:
            return None
        return {
            "count": len(values),
            "mean": sum(values) / len(values),
            "min": min(values),
            "max": max(values),
            "latest": values[-1],
        }

    @property
    def metric_names(self) -> List[str]:
        with self._lock:
            return list(self._metrics)

    def get_conversation_stats(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            tracker = self._conversations.get(conversation_id)
            if tracker is None:
                return None
            return self._tracker_stats(tracker)

    def end_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        """
        Stop tracking a finished conversation.

        Returns:
            Its final statistics, or None if it was never logged
        """
        with self._lock:
            tracker = self._conversations.pop(conversation_id, None)
            if tracker is None:
                return None
            stats = self._tracker_stats(tracker)
        logger.debug(f"Conversation {conversation_id} ended after {stats['turnCount']} turns")
        return stats

    def _tracker_stats(self, tracker: ConversationTracker) -> Dict[str, Any]:
        action_counts: Dict[str, int] = {}
        for action_type in tracker.actions:
            action_counts[action_type] = action_counts.get(action_type, 0) + 1

        total_reward = sum(tracker.rewards)
        return {
            "duration": self._clock() - tracker.start_time,
            "turnCount": tracker.turn_count,
            "actionCounts": action_counts,
            "averageReward": total_reward / len(tracker.rewards) if tracker.rewards else 0.0,
            "totalReward": total_reward,
        }

    def get_overall_stats(self) -> Dict[str, Any]:
        with self._lock:
            turn_counts = [t.turn_count for t in self._conversations.values()]
            distribution: Dict[str, int] = {}
            for tracker in self._conversations.values():
                for action_type in tracker.actions:
                    distribution[action_type] = distribution.get(action_type, 0) + 1

            return {
                "totalLogs": len(self._logs),
                "totalConversations": len(self._conversations),
                "totalMetrics": sum(len(v) for v in self._metrics.values()),
                "averageTurnsPerConversation": (
                    sum(turn_counts) / len(turn_counts) if turn_counts else 0.0
                ),
                "actionDistribution": distribution,
            }

    def export_logs(self) -> str:
        """All log entries as a JSON array."""
        return json.dumps([entry.to_dict() for entry in self.get_logs()], indent=2, default=str)

    def clear_logs(self) -> None:
        with self._lock:
            self._logs.clear()

    def clear_metrics(self) -> None:
        with self._lock:
            self._metrics.clear()

    def clear_conversation_stats(self) -> None:
        with self._lock:
            self._conversations.clear()

    def clear_all(self) -> None:
        self.clear_logs()
        self.clear_metrics()
        self.clear_conversation_stats()
        logger.debug("Monitor cleared")
