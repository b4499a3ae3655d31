"""
Prospect model — one row per business being researched and qualified.
"""
import uuid

from sqlalchemy import Column, Integer, Float, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from prospector.database import Base


class Prospect(Base):
    __tablename__ = 'prospects'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    business_name = Column(Text, nullable=False)
    industry = Column(Text, default='other')
    address = Column(Text, default='')
    city = Column(Text, default='')
    state = Column(Text, default='')
    employee_count = Column(Integer, nullable=True)
    estimated_revenue = Column(Float, nullable=True)

    # Contact
    contact_name = Column(Text, default='')
    phone = Column(Text, default='')
    email = Column(Text, default='')
    website = Column(Text, default='')

    # Digital presence — filled in from research passes
    has_website = Column(Boolean, default=False)
    has_google_business = Column(Boolean, default=False)
    has_social_media = Column(Boolean, default=False)
    has_online_reviews = Column(Boolean, default=False)

    pipeline_stage = Column(Text, nullable=False, default='cold', index=True)
    qualification_score = Column(Integer, nullable=False, default=0)   # 0-100, cache of latest scoring
    score_breakdown = Column(JSON, default=dict)                        # six category sub-scores
    qualification_level = Column(Text, default='disqualified')

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def context(self):
        """Static attributes every adapter may read alongside its pass inputs."""
        return {
            'prospect_id': self.id,
            'business_name': self.business_name,
            'industry': self.industry or 'other',
            'address': self.address or '',
            'city': self.city or '',
            'state': self.state or '',
            'website': self.website or '',
            'phone': self.phone or '',
        }

    def to_dict(self):
        return {
            'id': self.id,
            'business_name': self.business_name,
            'industry': self.industry,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'employee_count': self.employee_count,
            'estimated_revenue': self.estimated_revenue,
            'contact_name': self.contact_name,
            'phone': self.phone,
            'email': self.email,
            'website': self.website,
            'has_website': bool(self.has_website),
            'has_google_business': bool(self.has_google_business),
            'has_social_media': bool(self.has_social_media),
            'has_online_reviews': bool(self.has_online_reviews),
            'pipeline_stage': self.pipeline_stage,
            'qualification_score': self.qualification_score,
            'score_breakdown': self.score_breakdown or {},
            'qualification_level': self.qualification_level,
        }
