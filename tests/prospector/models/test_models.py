"""Tests for prospector.models — defaults, context, attempt uniqueness."""
import pytest
from sqlalchemy.exc import IntegrityError

from prospector.models.prospect import Prospect
from prospector.models.research_attempt import ResearchAttempt


class TestProspect:

    def test_defaults(self, db_session):
        p = Prospect(business_name='Alpine Auto')
        db_session.add(p)
        db_session.commit()

        assert p.id
        assert p.pipeline_stage == 'cold'
        assert p.qualification_score == 0
        assert p.has_website is False
        assert p.created_at is not None

    def test_context_has_no_none_values(self):
        ctx = Prospect(id='p-1', business_name='Alpine Auto').context()
        assert ctx['prospect_id'] == 'p-1'
        assert ctx['industry'] == 'other'
        assert all(v is not None for v in ctx.values())

    def test_to_dict_flags_are_bool(self):
        data = Prospect(id='p-1', business_name='Alpine Auto').to_dict()
        assert data['has_online_reviews'] is False
        assert data['score_breakdown'] == {}


class TestResearchAttempt:

    def test_attempt_number_unique_per_prospect(self, db_session, make_prospect):
        make_prospect(id='p-1')
        db_session.add(ResearchAttempt(prospect_id='p-1', attempt_number=1, pass_results=[]))
        db_session.commit()

        db_session.add(ResearchAttempt(prospect_id='p-1', attempt_number=1, pass_results=[]))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
