from prospector.models.prospect import Prospect
from prospector.models.research_attempt import ResearchAttempt
from prospector.models.stage_transition import StageTransition

__all__ = ['Prospect', 'ResearchAttempt', 'StageTransition']
