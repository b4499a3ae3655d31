"""
Scoring Engine — six-category qualification score (0–100).

Pure function of the merged outputs of every pass that has ever succeeded for
the prospect. Same inputs, same score: no clock, no randomness, no I/O beyond
the one-time config load.

  business_size      max 20   employee_count bands          (supplementary_sources)
  digital_presence   max 25   website/google/social/reviews (web_research, location_data, reviews_analysis)
  competitor_gaps    max 20   points per identified gap     (strategy_generation)
  location           max 15   service-area city / state     (location_data)
  industry_fit       max 10   high-value industry list      (location_data)
  revenue_indicator  max 10   estimated revenue bands       (supplementary_sources)

A category whose source pass has never succeeded scores 0.
"""
import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

import yaml

from prospector.config import SERVICE_AREA_CITIES, SERVICE_AREA_STATES

logger = logging.getLogger('pipeline.scoring')


CATEGORY_MAXIMA = {
    'business_size': 20,
    'digital_presence': 25,
    'competitor_gaps': 20,
    'location': 15,
    'industry_fit': 10,
    'revenue_indicator': 10,
}

# Passes whose outputs feed each category
CATEGORY_SOURCES = {
    'business_size': ['supplementary_sources'],
    'digital_presence': ['web_research', 'location_data', 'reviews_analysis'],
    'competitor_gaps': ['strategy_generation'],
    'location': ['location_data'],
    'industry_fit': ['location_data'],
    'revenue_indicator': ['supplementary_sources'],
}


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

_scoring_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'business_size': {
            # [min_employees, max_employees or null, points]; first match wins
            'bands': [
                [1, 4, 12],
                [5, 25, 20],
                [26, 50, 12],
                [51, None, 8],
            ],
        },
        'digital_presence': {
            'weights': {
                'has_website': 8,
                'has_google_business': 6,
                'has_social_media': 6,
                'has_online_reviews': 5,
            },
        },
        'competitor_gaps': {
            'points_per_gap': 5,
        },
        'location': {
            'city_points': 15,
            'state_points': 10,
            'cities': None,   # None → SERVICE_AREA_CITIES
            'states': None,   # None → SERVICE_AREA_STATES
        },
        'industry_fit': {
            'high_value': ['professional_services', 'healthcare', 'real_estate'],
            'high_value_points': 10,
            'known_points': 8,
            'other_points': 4,
        },
        'revenue_indicator': {
            'sweet_spot': [250000, 2000000],
            'sweet_spot_points': 10,
            'minimum': 100000,
            'minimum_points': 6,
        },
        'levels': {
            'high': 70,
            'medium': 50,
            'low': 30,
        },
    }


def load_scoring_config():
    """Load scoring config from YAML, with in-memory cache and hardcoded fallback."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    config_path = os.path.join(os.path.dirname(__file__), 'scoring_config.yaml')
    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        merged = _default_config()
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values
        _scoring_config = merged
        logger.info("Scoring config loaded from YAML (version=%s)", _scoring_config.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Scoring YAML unavailable (%s), using defaults", e)
        _scoring_config = _default_config()

    return _scoring_config


# ── Result ───────────────────────────────────────────────────────────────────

@dataclass
class ScoreBreakdown:
    business_size: int = 0
    digital_presence: int = 0
    competitor_gaps: int = 0
    location: int = 0
    industry_fit: int = 0
    revenue_indicator: int = 0
    qualification_level: str = 'disqualified'
    # category → passes that have not succeeded yet and would feed it
    missing_inputs: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.categories().values())

    def categories(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in CATEGORY_MAXIMA}

    def passes_to_retry(self) -> List[str]:
        names = []
        for passes in self.missing_inputs.values():
            for p in passes:
                if p not in names:
                    names.append(p)
        return names

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.categories(),
            'total': self.total,
            'qualification_level': self.qualification_level,
            'missing_inputs': self.missing_inputs,
        }


# ── Category rules ───────────────────────────────────────────────────────────

def _clamp(points, category):
    return max(0, min(int(points), CATEGORY_MAXIMA[category]))


def score_business_size(outputs, cfg) -> int:
    employees = outputs.get('employee_count')
    if not employees or employees <= 0:
        return 0
    for low, high, points in cfg['business_size']['bands']:
        if employees >= low and (high is None or employees <= high):
            return _clamp(points, 'business_size')
    return 0


def score_digital_presence(outputs, cfg) -> int:
    weights = cfg['digital_presence']['weights']
    points = sum(weight for flag, weight in weights.items() if outputs.get(flag) is True)
    return _clamp(points, 'digital_presence')


def score_competitor_gaps(outputs, cfg) -> int:
    gaps = outputs.get('competitor_gaps') or []
    return _clamp(len(gaps) * cfg['competitor_gaps']['points_per_gap'], 'competitor_gaps')


def score_location(outputs, cfg) -> int:
    rules = cfg['location']
    cities = {c.lower() for c in (rules.get('cities') or SERVICE_AREA_CITIES)}
    states = {s.upper() for s in (rules.get('states') or SERVICE_AREA_STATES)}
    city = (outputs.get('city') or '').strip().lower()
    state = (outputs.get('state') or '').strip().upper()
    if city and city in cities:
        return _clamp(rules['city_points'], 'location')
    if state and state in states:
        return _clamp(rules['state_points'], 'location')
    return 0


def score_industry_fit(industry, cfg) -> int:
    rules = cfg['industry_fit']
    if not industry:
        return 0
    if industry in rules['high_value']:
        return _clamp(rules['high_value_points'], 'industry_fit')
    if industry == 'other':
        return _clamp(rules['other_points'], 'industry_fit')
    return _clamp(rules['known_points'], 'industry_fit')


def score_revenue_indicator(outputs, cfg) -> int:
    rules = cfg['revenue_indicator']
    revenue = outputs.get('estimated_revenue')
    if not revenue:
        return 0
    low, high = rules['sweet_spot']
    if low <= revenue <= high:
        return _clamp(rules['sweet_spot_points'], 'revenue_indicator')
    if revenue > rules['minimum']:
        return _clamp(rules['minimum_points'], 'revenue_indicator')
    return 0


def qualification_level(total, cfg) -> str:
    levels = cfg['levels']
    if total >= levels['high']:
        return 'high'
    if total >= levels['medium']:
        return 'medium'
    if total >= levels['low']:
        return 'low'
    return 'disqualified'


# ── Public API ───────────────────────────────────────────────────────────────

def compute_score(prospect, outputs: Dict[str, Any], succeeded_passes: Optional[List[str]] = None,
                  config: Optional[Dict[str, Any]] = None) -> ScoreBreakdown:
    """
    Score a prospect from merged successful-pass outputs.

    Args:
        prospect:         Prospect (industry fallback only).
        outputs:          Ledger.all_succeeded_outputs() for the prospect.
        succeeded_passes: Pass names that have succeeded at least once; used to
                          report which passes would still improve the score.
                          When omitted, inferred from which output keys exist.
        config:           Override scoring config (tests); defaults to YAML.
    """
    cfg = config or load_scoring_config()
    outputs = outputs or {}

    # Prospect's declared industry only counts once location_data has run
    industry = outputs.get('industry')
    if not industry and 'place_id' in outputs:
        industry = getattr(prospect, 'industry', None)

    breakdown = ScoreBreakdown(
        business_size=score_business_size(outputs, cfg),
        digital_presence=score_digital_presence(outputs, cfg),
        competitor_gaps=score_competitor_gaps(outputs, cfg),
        location=score_location(outputs, cfg),
        industry_fit=score_industry_fit(industry, cfg),
        revenue_indicator=score_revenue_indicator(outputs, cfg),
    )
    breakdown.qualification_level = qualification_level(breakdown.total, cfg)

    if succeeded_passes is None:
        succeeded_passes = _infer_succeeded(outputs)
    for category, points in breakdown.categories().items():
        if points >= CATEGORY_MAXIMA[category]:
            continue
        needed = [p for p in CATEGORY_SOURCES[category] if p not in succeeded_passes]
        if needed:
            breakdown.missing_inputs[category] = needed

    return breakdown


# One key that every successful run of the pass produces
_PASS_MARKERS = {
    'location_data': 'place_id',
    'web_research': 'has_website',
    'reviews_analysis': 'review_summary',
    'supplementary_sources': 'directory_listings',
    'strategy_generation': 'competitor_gaps',
}


def _infer_succeeded(outputs):
    return [name for name, key in _PASS_MARKERS.items() if key in outputs]


def apply_score(prospect, breakdown: ScoreBreakdown):
    """Write the breakdown onto the prospect. qualification_score is always the category sum."""
    prospect.score_breakdown = copy.deepcopy(breakdown.categories())
    prospect.qualification_score = breakdown.total
    prospect.qualification_level = breakdown.qualification_level
    return prospect
