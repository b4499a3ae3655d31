"""
ResearchAttempt model — one row per orchestrator run for a prospect.

Append-only. (prospect_id, attempt_number) is unique so two racing appends for
the same prospect cannot both land.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from prospector.database import Base


class ResearchAttempt(Base):
    __tablename__ = 'research_attempts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    prospect_id = Column(Text, ForeignKey('prospects.id'), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)   # 1-based, monotonic per prospect
    status = Column(Text, nullable=False, default='completed')   # completed / cancelled
    pass_results = Column(JSON, nullable=False, default=list)    # ordered PassResult dicts
    started_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('prospect_id', 'attempt_number', name='uq_attempt_prospect_number'),
    )
