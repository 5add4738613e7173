"""SQLAlchemy ORM models for owners, agents, queues, conversations, knowledge and graph."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Single declarative base for all tables."""

    pass


# =============================================================================
# Closed value sets
# =============================================================================


class AgentStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskSource(StrEnum):
    USER = "user"
    SYSTEM = "system"
    SELF = "self"
    DELEGATION = "delegation"


class ConversationMode(StrEnum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    SUMMARY = "summary"


# =============================================================================
# OWNERS (2 tables)
# =============================================================================


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Aide(Base):
    __tablename__ = "aides"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# =============================================================================
# AGENTS & TASK QUEUE (2 tables)
# =============================================================================


class Agent(Base):
    __tablename__ = "agents"
    __table_args__ = (
        CheckConstraint(
            "(team_id IS NOT NULL AND aide_id IS NULL) OR (team_id IS NULL AND aide_id IS NOT NULL)",
            name="chk_agent_single_owner",
        ),
        CheckConstraint(
            "status IN ('idle', 'running', 'paused')",
            name="chk_agent_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("teams.id", ondelete="CASCADE"))
    aide_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("aides.id", ondelete="CASCADE"))
    parent_agent_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("agents.id"))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(200), nullable=False, default="assistant")
    system_prompt: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AgentStatus.IDLE)
    lead_next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    backoff_next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    backoff_attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def is_lead(self) -> bool:
        return self.parent_agent_id is None


class AgentTask(Base):
    """Background task queue entry."""

    __tablename__ = "agent_tasks"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed')",
            name="chk_agent_task_status",
        ),
        CheckConstraint(
            "source IN ('user', 'system', 'self', 'delegation')",
            name="chk_agent_task_source",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("teams.id", ondelete="CASCADE"))
    aide_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("aides.id", ondelete="CASCADE"))
    assigned_to_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("agents.id", ondelete="SET NULL"))
    task: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TaskStatus.PENDING)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    result: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


# =============================================================================
# CONVERSATIONS (2 tables)
# =============================================================================


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("agent_id", "mode", name="uq_conversation_agent_mode"),
        CheckConstraint("mode IN ('foreground', 'background')", name="chk_conversation_mode"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="uq_message_conversation_seq"),
        CheckConstraint(
            "role IN ('user', 'assistant', 'system', 'summary')",
            name="chk_message_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    # For summaries: the last message the summary covers
    previous_message_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# =============================================================================
# KNOWLEDGE (2 tables)
# =============================================================================


class KnowledgeItem(Base):
    """Professional knowledge learned during background work."""

    __tablename__ = "knowledge_items"
    __table_args__ = (
        CheckConstraint(
            "type IN ('fact', 'technique', 'pattern', 'lesson')",
            name="chk_knowledge_item_type",
        ),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="chk_knowledge_item_confidence",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float | None] = mapped_column(Float)
    source_conversation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Memory(Base):
    """What the agent learned about its user in foreground chat."""

    __tablename__ = "memories"
    __table_args__ = (
        CheckConstraint(
            "type IN ('preference', 'insight', 'fact')",
            name="chk_memory_type",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    source_message_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("messages.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# =============================================================================
# KNOWLEDGE GRAPH (6 tables)
# =============================================================================


edge_type_source_types = Table(
    "graph_edge_type_source_types",
    Base.metadata,
    Column("edge_type_id", Uuid, ForeignKey("graph_edge_types.id", ondelete="CASCADE"), primary_key=True),
    Column("node_type_id", Uuid, ForeignKey("graph_node_types.id", ondelete="CASCADE"), primary_key=True),
)

edge_type_target_types = Table(
    "graph_edge_type_target_types",
    Base.metadata,
    Column("edge_type_id", Uuid, ForeignKey("graph_edge_types.id", ondelete="CASCADE"), primary_key=True),
    Column("node_type_id", Uuid, ForeignKey("graph_node_types.id", ondelete="CASCADE"), primary_key=True),
)


class GraphNodeType(Base):
    __tablename__ = "graph_node_types"
    __table_args__ = (
        # owner_id NULL = global; global uniqueness is enforced by GraphTypeManager
        UniqueConstraint("owner_id", "name", name="uq_graph_node_type_owner_name"),
        CheckConstraint("created_by IN ('system', 'agent', 'user')", name="chk_graph_node_type_created_by"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    properties_schema: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    example_properties: Mapped[dict | None] = mapped_column(JSONType)
    created_by: Mapped[str] = mapped_column(String(20), nullable=False, default="system")
    justification: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class GraphEdgeType(Base):
    __tablename__ = "graph_edge_types"
    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_graph_edge_type_owner_name"),
        CheckConstraint("created_by IN ('system', 'agent', 'user')", name="chk_graph_edge_type_created_by"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    properties_schema: Mapped[dict | None] = mapped_column(JSONType)
    example_properties: Mapped[dict | None] = mapped_column(JSONType)
    created_by: Mapped[str] = mapped_column(String(20), nullable=False, default="system")
    justification: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    source_node_types: Mapped[list[GraphNodeType]] = relationship(
        secondary=edge_type_source_types, lazy="selectin"
    )
    target_node_types: Mapped[list[GraphNodeType]] = relationship(
        secondary=edge_type_target_types, lazy="selectin"
    )


class GraphNode(Base):
    __tablename__ = "graph_nodes"
    __table_args__ = (UniqueConstraint("owner_id", "type", "name", name="uq_graph_node_owner_type_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    properties: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    source_conversation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class GraphEdge(Base):
    __tablename__ = "graph_edges"
    __table_args__ = (
        UniqueConstraint("owner_id", "type", "source_id", "target_id", name="uq_graph_edge_natural_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    properties: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# =============================================================================
# NOTIFICATIONS (2 tables)
# =============================================================================


class Briefing(Base):
    __tablename__ = "briefings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("teams.id", ondelete="CASCADE"))
    aide_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("aides.id", ondelete="CASCADE"))
    agent_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class InboxItem(Base):
    __tablename__ = "inbox_items"
    __table_args__ = (CheckConstraint("type IN ('briefing', 'feedback')", name="chk_inbox_item_type"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    briefing_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("briefings.id", ondelete="CASCADE"))
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
