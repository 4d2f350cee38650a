import enum

from sqlalchemy import JSON, Boolean, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bucketlab.core.database import Base


class ExperimentStatus(str, enum.Enum):
    """Status of an experiment lifecycle."""

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class EventType(str, enum.Enum):
    """The two event kinds the results engine understands."""

    EXPOSURE = "exposure"
    CONVERSION = "conversion"


class Experiment(Base):
    """
    Represents an A/B experiment definition.

    Holds the traffic allocation and lifecycle status, and owns an ordered
    list of variations. Variation order is the bucketing order and must not
    change once users have been assigned.
    """

    __tablename__ = "experiments"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)

    status = Column(SQLEnum(ExperimentStatus), default=ExperimentStatus.DRAFT, nullable=False)
    traffic_allocation = Column(Float, default=100.0, nullable=False)  # Percentage 0-100

    # Timeline
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    started_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))

    variations = relationship(
        "Variation",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="Variation.position",
        lazy="selectin",
    )


class Variation(Base):
    """A single arm of an experiment."""

    __tablename__ = "variations"

    id = Column(String, primary_key=True)
    experiment_id = Column(String, ForeignKey("experiments.id"), nullable=False)

    name = Column(String, nullable=False)
    description = Column(Text)
    url = Column(String)  # Optional redirect target
    weight = Column(Float, nullable=False)  # Relative, normalized by the sum within the experiment
    is_control = Column(Boolean, default=False, nullable=False)

    # Definition order within the experiment
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    experiment = relationship("Experiment", back_populates="variations")


class Assignment(Base):
    """Sticky binding of a user to a variation. Written at most once per pair."""

    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("experiment_id", "user_id", name="uq_assignment_experiment_user"),
    )

    id = Column(String, primary_key=True)
    experiment_id = Column(String, ForeignKey("experiments.id"), nullable=False)
    variation_id = Column(String, ForeignKey("variations.id"), nullable=False)
    user_id = Column(String, nullable=False)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())


class Event(Base):
    """Raw exposure or conversion event for a user in a variation."""

    __tablename__ = "events"

    id = Column(String, primary_key=True)
    experiment_id = Column(String, ForeignKey("experiments.id"), nullable=False, index=True)
    variation_id = Column(String, ForeignKey("variations.id"), nullable=False)
    user_id = Column(String, nullable=False)
    event_type = Column(SQLEnum(EventType), nullable=False)
    event_name = Column(String)
    metadata_ = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
