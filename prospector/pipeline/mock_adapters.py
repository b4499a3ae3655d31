"""
Mock provider adapters — realistic fake research data for local runs.

Activated with MOCK_PIPELINE=1. Every external call is replaced with canned
data derived from the business name, so the same prospect always gets the
same research results. FAIL_PASSES=web_research,strategy_generation makes
those passes fail, which is handy for exercising the retry path end to end.
"""
import hashlib
import logging
import os
import random
import time
from abc import abstractmethod
from typing import Dict

from prospector.errors import AdapterError
from prospector.pipeline.base import PassAdapter

logger = logging.getLogger('pipeline.mock')


MOCK_CITIES = [
    ('Denver', 'CO'), ('Boulder', 'CO'), ('Pueblo', 'CO'),
    ('Austin', 'TX'), ('Fort Collins', 'CO'), ('Phoenix', 'AZ'),
]
MOCK_INDUSTRIES = ['professional_services', 'healthcare', 'restaurants', 'home_services', 'retail', 'real_estate']
MOCK_GAPS = [
    'No online booking while top competitors offer it',
    'Google listing has no photos',
    'Website not mobile friendly',
    'No review response strategy',
    'Competitors rank for service-area keywords',
    'No email capture on website',
]


def _rng(inputs, salt):
    seed = hashlib.sha256(f"{inputs.get('business_name', '')}:{salt}".encode()).hexdigest()
    return random.Random(int(seed[:16], 16))


def _simulate_delay(min_s=0.05, max_s=0.2):
    time.sleep(random.uniform(min_s, max_s))


class MockPassAdapter(PassAdapter):
    """Shared failure injection for the fakes below."""

    def __init__(self, pass_name, fail=False, delay=True):
        self.pass_name = pass_name
        self.fail = fail
        self.delay = delay

    def fetch(self, inputs, timeout):
        if self.delay:
            _simulate_delay()
        if self.fail:
            raise AdapterError(f"[MOCK] {self.pass_name} provider unavailable")
        return self.fake(inputs)

    @abstractmethod
    def fake(self, inputs):
        """Canned outputs for this pass."""


class MockLocationData(MockPassAdapter):
    capability = 'maps'
    description = '[MOCK] Simulated Google Places lookup'
    apis = ['Mock']

    def fake(self, inputs):
        rng = _rng(inputs, 'location')
        if inputs.get('city'):
            city, state = inputs['city'], inputs.get('state', '')
        else:
            city, state = rng.choice(MOCK_CITIES)
        slug = ''.join(c for c in inputs.get('business_name', 'business').lower() if c.isalnum())
        industry = inputs.get('industry')
        if industry in (None, '', 'other'):
            industry = rng.choice(MOCK_INDUSTRIES)
        return {
            'place_id': f'mock-place-{slug[:24]}',
            'formatted_address': f'{rng.randint(100, 9999)} Main St, {city}, {state}',
            'city': city,
            'state': state,
            'phone': f'(303) 555-{rng.randint(1000, 9999)}',
            'website': inputs.get('website') or f'https://www.{slug[:20]}.com',
            'rating': round(rng.uniform(3.2, 4.9), 1),
            'review_count': rng.randint(3, 240),
            'industry': industry,
            'has_google_business': True,
        }


class MockWebResearch(MockPassAdapter):
    capability = 'web'
    description = '[MOCK] Simulated website scrape'
    apis = ['Mock']

    def fake(self, inputs):
        rng = _rng(inputs, 'web')
        name = inputs.get('business_name', 'Business')
        socials = {}
        if rng.random() > 0.3:
            socials['facebook'] = f"https://facebook.com/{name.replace(' ', '').lower()}"
        return {
            'website_content': f"# {name}\n\nFamily owned since {rng.randint(1985, 2018)}.\n\n## Services\n",
            'has_website': True,
            'social_profiles': socials,
            'has_social_media': bool(socials),
            'email': f"info@{name.replace(' ', '').lower()[:20]}.com",
            'services': rng.sample(['Consultations', 'Installations', 'Repairs', 'Maintenance plans'], 2),
        }


class MockReviewsAnalysis(MockPassAdapter):
    capability = 'reviews'
    description = '[MOCK] Simulated review aggregation'
    apis = ['Mock']

    def fake(self, inputs):
        rng = _rng(inputs, 'reviews')
        count = rng.randint(0, 180)
        rating = round(rng.uniform(3.0, 4.9), 1)
        return {
            'review_summary': f"{count} reviews averaging {rating}; recurring themes: service, price",
            'average_rating': rating,
            'has_online_reviews': count > 0,
            'review_themes': {'service': rng.randint(0, 5), 'price': rng.randint(0, 3)},
        }


class MockSupplementarySources(MockPassAdapter):
    capability = 'directory'
    description = '[MOCK] Simulated directory research'
    apis = ['Mock']

    def fake(self, inputs):
        rng = _rng(inputs, 'directory')
        return {
            'employee_count': rng.randint(1, 60),
            'estimated_revenue': float(rng.randint(80, 2500) * 1000),
            'years_in_business': rng.randint(1, 35),
            'owner_name': rng.choice(['Pat Rivera', 'Sam Lee', 'Jordan Blake', 'Alex Kim']),
            'directory_listings': ['Yellow Pages', 'BBB'],
        }


class MockStrategyGeneration(MockPassAdapter):
    capability = 'strategy'
    description = '[MOCK] Simulated strategy synthesis'
    apis = ['Mock']

    def fake(self, inputs):
        rng = _rng(inputs, 'strategy')
        gaps = rng.sample(MOCK_GAPS, rng.randint(1, 4))
        return {
            'competitor_gaps': gaps,
            'opportunity_areas': ['Local SEO', 'Review generation'],
            'marketing_strategy': f"Close the most visible gap first: {gaps[0].lower()}.",
        }


MOCK_ADAPTERS: Dict[str, type] = {
    'location_data': MockLocationData,
    'web_research': MockWebResearch,
    'reviews_analysis': MockReviewsAnalysis,
    'supplementary_sources': MockSupplementarySources,
    'strategy_generation': MockStrategyGeneration,
}


def build_mock_adapters(fail_passes=None, delay=True) -> Dict[str, PassAdapter]:
    if fail_passes is None:
        fail_passes = [p.strip() for p in os.getenv('FAIL_PASSES', '').split(',') if p.strip()]
    adapters = {
        name: cls(name, fail=name in fail_passes, delay=delay)
        for name, cls in MOCK_ADAPTERS.items()
    }
    logger.info("Mock adapters active (failing: %s)", ', '.join(fail_passes) or 'none')
    return adapters
