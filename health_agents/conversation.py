"""
Conversation Context for Health Buddy

Short-term memory for one chat session: a bounded message window, the
latest health values mentioned, and the topics discussed so far.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

from .health_values import BloodPressureValue, HealthValue, ScalarValue, SleepSummaryValue

logger = logging.getLogger(__name__)

HEALTH_CONTEXT_MAX_AGE = timedelta(hours=1)
LLM_CONTEXT_MESSAGES = 5

TOPIC_KEYWORDS = {
    "steps": ["steps", "步数"],
    "heart_rate": ["heart", "心率"],
    "sleep": ["sleep", "睡眠"],
    "weight": ["weight", "体重"],
    "blood_pressure": ["blood pressure", "血压"],
    "exercise": ["exercise", "运动"],
    "calories": ["calories", "卡路里"],
}


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass
class ContextMessage:
    role: MessageRole
    content: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class ConversationContext:
    session_id: str
    start_time: datetime
    last_activity: datetime
    messages: List[ContextMessage] = field(default_factory=list)
    health_context: Dict[str, str] = field(default_factory=dict)
    health_values: Dict[str, HealthValue] = field(default_factory=dict)
    last_health_update: Optional[datetime] = None
    discussed_topics: Set[str] = field(default_factory=set)


@dataclass
class ConversationSummary:
    id: str
    start_time: datetime
    last_activity: datetime
    message_count: int
    topics: List[str]
    metrics_discussed: List[str]
    title: str
    messages: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "message_count": self.message_count,
            "topics": self.topics,
            "metrics_discussed": self.metrics_discussed,
            "title": self.title,
            "messages": self.messages,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationSummary":
        return cls(
            id=data["id"],
            start_time=datetime.fromisoformat(data["start_time"]),
            last_activity=datetime.fromisoformat(data["last_activity"]),
            message_count=int(data.get("message_count", 0)),
            topics=list(data.get("topics", [])),
            metrics_discussed=list(data.get("metrics_discussed", [])),
            title=data.get("title", ""),
            messages=list(data.get("messages", [])),
        )


def topics_in(text: str) -> Set[str]:
    lowered = text.lower()
    return {topic for topic, kws in TOPIC_KEYWORDS.items() if any(kw in lowered for kw in kws)}


class ConversationContextManager:
    """
    Owns the ConversationContext for the active session.

    All mutation goes through this object and is serialized by an RLock.
    Use append_turn() to commit a user/assistant pair as one unit.
    """

    def __init__(
        self,
        max_messages: int = 10,
        max_message_age: float = 3600.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.max_messages = max_messages
        self.max_message_age = timedelta(seconds=max_message_age)
        self.clock = clock
        self._lock = threading.RLock()
        self.context = self._new_context()

    def _new_context(self) -> ConversationContext:
        now = self.clock()
        return ConversationContext(
            session_id=str(uuid.uuid4()),
            start_time=now,
            last_activity=now,
        )

    @property
    def session_id(self) -> str:
        return self.context.session_id

    @property
    def messages(self) -> List[ContextMessage]:
        with self._lock:
            return list(self.context.messages)

    def make_message(self, role: MessageRole, content: str, **metadata) -> ContextMessage:
        return ContextMessage(role=role, content=content, timestamp=self.clock(), metadata=metadata)

    def add_message(self, message: ContextMessage) -> None:
        with self._lock:
            self._append(message)
            self._cleanup()

    def append_turn(self, user: ContextMessage, assistant: ContextMessage) -> None:
        """Commit a user message and its reply together."""
        with self._lock:
            self._append(user)
            self._append(assistant)
            self._cleanup()
        logger.debug(f"[CONTEXT] Turn committed, {len(self.context.messages)} messages in window")

    def _append(self, message: ContextMessage) -> None:
        self.context.messages.append(message)
        self.context.last_activity = self.clock()
        if message.role is MessageRole.USER:
            self.context.discussed_topics.update(topics_in(message.content))

    def _cleanup(self) -> None:
        cutoff = self.clock() - self.max_message_age
        kept = [m for m in self.context.messages if m.timestamp >= cutoff]
        self.context.messages = kept[-self.max_messages:]

    def update_health_context(self, metric: str, value: Union[str, HealthValue]) -> None:
        """
        Record the latest value for a metric.

        Args:
            metric: Metric identifier, e.g. "steps"
            value: Display string, or a HealthValue (its English rendering
                is stored as the display string)
        """
        with self._lock:
            if isinstance(value, (ScalarValue, BloodPressureValue, SleepSummaryValue)):
                self.context.health_values[metric] = value
                self.context.health_context[metric] = value.format()
            else:
                self.context.health_context[metric] = str(value)
            self.context.last_health_update = self.clock()

    def _health_is_fresh(self) -> bool:
        updated = self.context.last_health_update
        return updated is not None and self.clock() - updated < HEALTH_CONTEXT_MAX_AGE

    def get_relevant_health_context(self) -> Dict[str, str]:
        with self._lock:
            if not self._health_is_fresh():
                return {}
            return dict(self.context.health_context)

    def get_relevant_health_values(self) -> Dict[str, HealthValue]:
        with self._lock:
            if not self._health_is_fresh():
                return {}
            return dict(self.context.health_values)

    def get_context_for_llm(self) -> str:
        with self._lock:
            recent = self.context.messages[-LLM_CONTEXT_MESSAGES:]
            lines = [f"{m.role.label}: {m.content}" for m in recent]
            health = self.get_relevant_health_context()
        if health:
            lines.append("Health Context: " + ", ".join(f"{k}: {v}" for k, v in health.items()))
        return "\n".join(lines)

    def summary(self) -> ConversationSummary:
        with self._lock:
            ctx = self.context
            first_user = next((m.content for m in ctx.messages if m.role is MessageRole.USER), "")
            title = first_user[:40] + ("..." if len(first_user) > 40 else "") if first_user else "New Conversation"
            return ConversationSummary(
                id=ctx.session_id,
                start_time=ctx.start_time,
                last_activity=ctx.last_activity,
                message_count=len(ctx.messages),
                topics=sorted(ctx.discussed_topics),
                metrics_discussed=list(ctx.health_context.keys()),
                title=title,
                messages=[m.to_dict() for m in ctx.messages],
            )

    def start_new_session(self, store=None) -> str:
        """
        Save the current session (if it has messages) and start a fresh one.

        Args:
            store: Optional persistence collaborator with a save(summary) method

        Returns:
            The new session ID
        """
        with self._lock:
            if store is not None and self.context.messages:
                summary = self.summary()
                store.save(summary)
                logger.info(f"[CONTEXT] Saved session {summary.id} ({summary.message_count} messages)")
            self.context = self._new_context()
            return self.context.session_id

    def clear_context(self) -> None:
        with self._lock:
            self.context = self._new_context()
