"""
Provider adapters — one per research capability.

  location_data          → Google Places (text search + details)
  web_research           → Firecrawl scrape of the business website
  reviews_analysis       → Google Places reviews by place_id
  supplementary_sources  → Perplexity directory research
  strategy_generation    → OpenAI competitive-gap synthesis

Each adapter receives its credentials at construction and routes the provider
call through that capability's circuit breaker when one is given. Adapters
raise AdapterError (or let requests errors propagate); PassAdapter.invoke()
turns either into a failed result.
"""
import json
import logging
import re
from collections import Counter
from typing import Dict, Any, Optional

import requests

from prospector import config
from prospector.errors import AdapterError
from prospector.pipeline.base import PassAdapter

logger = logging.getLogger('pipeline.adapters')


class ProviderAdapter(PassAdapter):
    """Adds credential checks and circuit-breaker routing on top of PassAdapter."""
    provider_name: str = ''

    def __init__(self, api_key: Optional[str] = None, base_url: str = '', breaker=None, session=None):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.breaker = breaker
        self.http = session or requests

    def _require_key(self):
        if not self.api_key:
            raise AdapterError(f"{self.provider_name} API key not configured")

    def _through_breaker(self, func, *args, **kwargs):
        if self.breaker is None:
            return func(*args, **kwargs)
        return self.breaker.call(func, *args, **kwargs)

    def _get_json(self, path, params, timeout):
        resp = self.http.get(f'{self.base_url}/{path}', params=params, timeout=timeout)
        return _json_or_raise(resp, self.provider_name)

    def _post_json(self, path, payload, headers, timeout):
        resp = self.http.post(f'{self.base_url}/{path}', json=payload, headers=headers, timeout=timeout)
        return _json_or_raise(resp, self.provider_name)


def _json_or_raise(resp, provider):
    if resp.status_code in (401, 403):
        raise AdapterError(f"{provider} denied the request (HTTP {resp.status_code})")
    if resp.status_code == 429:
        raise AdapterError(f"{provider} rate limit exceeded (HTTP 429)")
    if resp.status_code >= 400:
        raise AdapterError(f"{provider} returned HTTP {resp.status_code}: {resp.text[:200]}")
    try:
        return resp.json()
    except ValueError:
        raise AdapterError(f"{provider} returned a non-JSON body") from None


# ── Google Places ────────────────────────────────────────────────────────────

# Google place types → our industry enumeration
PLACE_TYPE_INDUSTRY = {
    'restaurant': 'restaurants', 'cafe': 'restaurants', 'bakery': 'restaurants', 'bar': 'restaurants',
    'store': 'retail', 'clothing_store': 'retail', 'furniture_store': 'retail', 'shopping_mall': 'retail',
    'accounting': 'professional_services', 'insurance_agency': 'professional_services',
    'doctor': 'healthcare', 'dentist': 'healthcare', 'physiotherapist': 'healthcare', 'hospital': 'healthcare',
    'real_estate_agency': 'real_estate',
    'car_repair': 'automotive', 'car_dealer': 'automotive', 'car_wash': 'automotive',
    'plumber': 'home_services', 'electrician': 'home_services', 'roofing_contractor': 'home_services',
    'general_contractor': 'home_services',
    'gym': 'fitness',
    'beauty_salon': 'beauty_salons', 'hair_care': 'beauty_salons', 'spa': 'beauty_salons',
    'lawyer': 'legal_services',
}


def industry_from_place_types(types):
    for t in types or []:
        if t in PLACE_TYPE_INDUSTRY:
            return PLACE_TYPE_INDUSTRY[t]
    return 'other'


def _address_part(components, kind, short=False):
    for c in components or []:
        if kind in c.get('types', []):
            return c.get('short_name' if short else 'long_name', '')
    return ''


class LocationDataAdapter(ProviderAdapter):
    capability = 'maps'
    provider_name = 'Google Places'
    description = 'Google Places — listing, address, phone, category'
    apis = ['Google Places']

    def fetch(self, inputs, timeout):
        self._require_key()
        query = ' '.join(filter(None, [inputs.get('business_name'), inputs.get('city'), inputs.get('state')]))
        if not query:
            raise AdapterError("No business name to search for")

        search = self._through_breaker(
            self._get_json, 'textsearch/json', {'query': query, 'key': self.api_key}, timeout,
        )
        _check_places_status(search)
        candidates = search.get('results') or []
        if not candidates:
            raise AdapterError(f"No Google listing found for '{query}'")
        place_id = candidates[0]['place_id']

        details = self._through_breaker(self._get_json, 'details/json', {
            'place_id': place_id,
            'fields': 'place_id,formatted_address,address_components,formatted_phone_number,'
                      'website,rating,user_ratings_total,types',
            'key': self.api_key,
        }, timeout)
        _check_places_status(details)
        place = details.get('result') or {}
        components = place.get('address_components')

        return {
            'place_id': place.get('place_id', place_id),
            'formatted_address': place.get('formatted_address', ''),
            'city': _address_part(components, 'locality'),
            'state': _address_part(components, 'administrative_area_level_1', short=True),
            'phone': place.get('formatted_phone_number', ''),
            'website': place.get('website', ''),
            'rating': place.get('rating'),
            'review_count': place.get('user_ratings_total', 0),
            'industry': industry_from_place_types(place.get('types')),
            'has_google_business': True,
        }


def _check_places_status(payload):
    status = payload.get('status', 'OK')
    if status in ('OK', 'ZERO_RESULTS'):
        return
    message = payload.get('error_message', '')
    raise AdapterError(f"Google Places status {status}{': ' + message if message else ''}")


class ReviewsAnalysisAdapter(ProviderAdapter):
    capability = 'reviews'
    provider_name = 'Google Places'
    description = 'Google reviews — rating, themes, summary'
    apis = ['Google Places']

    THEME_KEYWORDS = {
        'service': ('service', 'staff', 'friendly', 'rude', 'helpful'),
        'price': ('price', 'expensive', 'cheap', 'value', 'cost'),
        'quality': ('quality', 'excellent', 'great', 'poor', 'best'),
        'wait_time': ('wait', 'slow', 'quick', 'fast', 'late'),
        'communication': ('call', 'respond', 'email', 'communication', 'follow up'),
    }

    def fetch(self, inputs, timeout):
        self._require_key()
        place_id = inputs['place_id']
        payload = self._through_breaker(self._get_json, 'details/json', {
            'place_id': place_id,
            'fields': 'rating,user_ratings_total,reviews',
            'key': self.api_key,
        }, timeout)
        _check_places_status(payload)
        place = payload.get('result') or {}
        reviews = place.get('reviews') or []
        total = place.get('user_ratings_total') or len(reviews)

        themes = Counter()
        for review in reviews:
            text = (review.get('text') or '').lower()
            for theme, words in self.THEME_KEYWORDS.items():
                if any(w in text for w in words):
                    themes[theme] += 1

        rating = place.get('rating')
        negative = sum(1 for r in reviews if (r.get('rating') or 5) <= 2)
        summary = (
            f"{total} reviews averaging {rating if rating is not None else 'n/a'}; "
            f"{negative} of {len(reviews)} sampled reviews are negative"
        )
        if themes:
            summary += "; recurring themes: " + ', '.join(t for t, _ in themes.most_common(3))

        return {
            'review_summary': summary,
            'average_rating': rating,
            'has_online_reviews': total > 0,
            'review_themes': dict(themes),
        }


# ── Firecrawl ────────────────────────────────────────────────────────────────

EMAIL_RE = re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}')
SOCIAL_RE = {
    'facebook': re.compile(r'https?://(?:www\.)?facebook\.com/[^\s)"\']+', re.I),
    'instagram': re.compile(r'https?://(?:www\.)?instagram\.com/[^\s)"\']+', re.I),
    'linkedin': re.compile(r'https?://(?:www\.)?linkedin\.com/[^\s)"\']+', re.I),
    'twitter': re.compile(r'https?://(?:www\.)?(?:twitter|x)\.com/[^\s)"\']+', re.I),
}
SERVICE_HEADING_RE = re.compile(r'^#{2,3}\s+(.+)$', re.M)

MAX_CONTENT_CHARS = 8000


class WebResearchAdapter(ProviderAdapter):
    capability = 'web'
    provider_name = 'Firecrawl'
    description = 'Firecrawl — website content, email, social profiles'
    apis = ['Firecrawl']

    def fetch(self, inputs, timeout):
        self._require_key()
        url = inputs.get('website')
        if not url:
            raise AdapterError("No website known for this business")
        if not url.startswith('http'):
            url = f'https://{url}'

        payload = self._through_breaker(
            self._post_json, 'scrape',
            {'url': url, 'formats': ['markdown', 'links'], 'onlyMainContent': True},
            {'Authorization': f'Bearer {self.api_key}'},
            timeout,
        )
        if not payload.get('success', True):
            raise AdapterError(f"Firecrawl could not scrape {url}: {payload.get('error', 'unknown error')}")

        data = payload.get('data') or {}
        markdown = data.get('markdown') or ''
        haystack = markdown + '\n' + '\n'.join(data.get('links') or [])

        socials = {}
        for network, pattern in SOCIAL_RE.items():
            match = pattern.search(haystack)
            if match:
                socials[network] = match.group(0)

        emails = EMAIL_RE.findall(haystack)
        services = [h.strip() for h in SERVICE_HEADING_RE.findall(markdown)][:10]

        return {
            'website_content': markdown[:MAX_CONTENT_CHARS],
            'has_website': bool(markdown.strip()),
            'social_profiles': socials,
            'has_social_media': bool(socials),
            'email': emails[0] if emails else '',
            'services': services,
        }


# ── Perplexity ───────────────────────────────────────────────────────────────

DIRECTORY_PROMPT = """Research the local business "{name}" in {location}.
Use business directories (Yellow Pages, BBB, state registries, LinkedIn).

Respond with JSON only:
{{
  "employee_count": integer or null,
  "estimated_revenue": annual USD integer or null,
  "years_in_business": integer or null,
  "owner_name": string or null,
  "directory_listings": [list of directory names where the business is listed]
}}"""


def parse_json_block(text):
    """Parse a JSON object out of an LLM reply, tolerating ```json fences."""
    text = (text or '').strip()
    fenced = re.search(r'```(?:json)?\s*(\{.*?\})\s*```', text, re.S)
    if fenced:
        text = fenced.group(1)
    else:
        start, end = text.find('{'), text.rfind('}')
        if start != -1 and end > start:
            text = text[start:end + 1]
    try:
        parsed = json.loads(text)
    except ValueError:
        raise AdapterError("Provider reply was not valid JSON") from None
    if not isinstance(parsed, dict):
        raise AdapterError("Provider reply was not a JSON object")
    return parsed


def _int_or_none(value):
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class SupplementarySourcesAdapter(ProviderAdapter):
    capability = 'directory'
    provider_name = 'Perplexity'
    description = 'Perplexity — directory listings, size, revenue, ownership'
    apis = ['Perplexity']

    def __init__(self, api_key=None, base_url='', breaker=None, session=None, model=None):
        super().__init__(api_key, base_url, breaker, session)
        self.model = model or config.PERPLEXITY_MODEL

    def fetch(self, inputs, timeout):
        self._require_key()
        location = ', '.join(filter(None, [inputs.get('city'), inputs.get('state')])) or 'an unknown location'
        payload = self._through_breaker(
            self._post_json, 'chat/completions',
            {
                'model': self.model,
                'messages': [{
                    'role': 'user',
                    'content': DIRECTORY_PROMPT.format(name=inputs.get('business_name', ''), location=location),
                }],
                'temperature': 0,
            },
            {'Authorization': f'Bearer {self.api_key}'},
            timeout,
        )
        try:
            content = payload['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError):
            raise AdapterError("Perplexity reply had no message content") from None

        found = parse_json_block(content)
        revenue = found.get('estimated_revenue')
        try:
            revenue = float(revenue) if revenue is not None else None
        except (TypeError, ValueError):
            revenue = None

        return {
            'employee_count': _int_or_none(found.get('employee_count')),
            'estimated_revenue': revenue,
            'years_in_business': _int_or_none(found.get('years_in_business')),
            'owner_name': found.get('owner_name') or '',
            'directory_listings': list(found.get('directory_listings') or []),
        }


# ── OpenAI ───────────────────────────────────────────────────────────────────

STRATEGY_PROMPT = """You are a local-business marketing strategist.

Business: {name} ({industry}) in {location}
Approximate size: {employees} employees
Customer reviews: {reviews}
Services offered: {services}
Website excerpt:
{website}

Identify gaps where competitors out-perform this business online and what a
marketing agency could fix first.

Respond in JSON:
{{
  "competitor_gaps": ["specific gap", ...],
  "opportunity_areas": ["opportunity", ...],
  "marketing_strategy": "3-4 sentence recommended strategy"
}}"""


class StrategyGenerationAdapter(PassAdapter):
    capability = 'strategy'
    description = 'OpenAI — competitor gaps, opportunities, strategy text'
    apis = ['OpenAI']

    def __init__(self, client=None, model=None, breaker=None):
        self.client = client
        self.model = model or config.OPENAI_MODEL
        self.breaker = breaker

    def fetch(self, inputs, timeout):
        if self.client is None:
            raise AdapterError("OpenAI client not configured")

        prompt = STRATEGY_PROMPT.format(
            name=inputs.get('business_name', ''),
            industry=inputs.get('industry', 'other'),
            location=', '.join(filter(None, [inputs.get('city'), inputs.get('state')])) or 'unknown',
            employees=inputs.get('employee_count') or 'unknown',
            reviews=inputs['review_summary'],
            services=', '.join(inputs.get('services') or []) or 'unknown',
            website=(inputs.get('website_content') or 'not available')[:3000],
        )
        kwargs = dict(
            model=self.model,
            messages=[{'role': 'user', 'content': prompt}],
            response_format={'type': 'json_object'},
            timeout=timeout,
        )
        create = self.client.chat.completions.create
        response = self.breaker.call(create, **kwargs) if self.breaker else create(**kwargs)
        result = parse_json_block(response.choices[0].message.content)

        return {
            'competitor_gaps': [str(g) for g in result.get('competitor_gaps') or []],
            'opportunity_areas': [str(o) for o in result.get('opportunity_areas') or []],
            'marketing_strategy': str(result.get('marketing_strategy') or ''),
        }


# ── Adapter registry ─────────────────────────────────────────────────────────

ADAPTERS: Dict[str, type] = {
    'location_data': LocationDataAdapter,
    'web_research': WebResearchAdapter,
    'reviews_analysis': ReviewsAnalysisAdapter,
    'supplementary_sources': SupplementarySourcesAdapter,
    'strategy_generation': StrategyGenerationAdapter,
}


def build_adapters(breakers=None, openai_client=None) -> Dict[str, PassAdapter]:
    """Instantiate every production adapter with credentials from config."""
    breakers = breakers or {}
    return {
        'location_data': LocationDataAdapter(
            config.GOOGLE_MAPS_API_KEY, config.GOOGLE_MAPS_API_URL, breakers.get('maps')),
        'web_research': WebResearchAdapter(
            config.FIRECRAWL_API_KEY, config.FIRECRAWL_API_URL, breakers.get('web')),
        'reviews_analysis': ReviewsAnalysisAdapter(
            config.GOOGLE_MAPS_API_KEY, config.GOOGLE_MAPS_API_URL, breakers.get('reviews')),
        'supplementary_sources': SupplementarySourcesAdapter(
            config.PERPLEXITY_API_KEY, config.PERPLEXITY_API_URL, breakers.get('directory')),
        'strategy_generation': StrategyGenerationAdapter(
            openai_client, config.OPENAI_MODEL, breakers.get('strategy')),
    }
