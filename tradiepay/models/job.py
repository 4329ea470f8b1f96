"""Job model (the subset the escrow flow depends on)."""
import enum

from sqlalchemy import Enum as SqlEnum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class JobStatus(str, enum.Enum):
    """Lifecycle of a job; ``PAID`` is only ever set by the payment state bridge."""

    OPEN = "open"
    ASSIGNED = "assigned"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Job(Base):
    """A job posted by a tradie and, once assigned, worked by a helper."""

    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_tradie_id", "tradie_id"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    tradie_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    assigned_helper_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    status: Mapped[JobStatus] = mapped_column(SqlEnum(JobStatus), nullable=False, default=JobStatus.OPEN)

    tradie = relationship("User", foreign_keys=[tradie_id])
    assigned_helper = relationship("User", foreign_keys=[assigned_helper_id])
