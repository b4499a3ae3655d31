"""
StageTransition model — audit trail of every pipeline stage change.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from prospector.database import Base


class StageTransition(Base):
    __tablename__ = 'stage_transitions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    prospect_id = Column(Text, ForeignKey('prospects.id'), nullable=False, index=True)
    from_stage = Column(Text, nullable=False)
    to_stage = Column(Text, nullable=False)
    action = Column(Text, nullable=False)    # action kind, or 'score' for score-driven moves
    score = Column(Integer, nullable=True)
    reason = Column(Text, default='')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
