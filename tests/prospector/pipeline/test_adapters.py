"""Tests for prospector.pipeline.adapters — provider adapters with mocked HTTP / OpenAI."""
import json
from unittest.mock import MagicMock

import pytest

from prospector.errors import AdapterError
from prospector.pipeline.adapters import (
    LocationDataAdapter, ReviewsAnalysisAdapter, WebResearchAdapter,
    SupplementarySourcesAdapter, StrategyGenerationAdapter,
    build_adapters, industry_from_place_types, parse_json_block,
)
from prospector.pipeline.graph import DEFAULT_GRAPH
from prospector.services.circuit_breaker import ProviderBreaker, OPEN


def response(payload=None, status=200, text=''):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text or json.dumps(payload or {})
    if payload is None:
        resp.json.side_effect = ValueError('no json')
    else:
        resp.json.return_value = payload
    return resp


INPUTS = {'prospect_id': 'p-1', 'business_name': 'Mile High Dental', 'city': 'Denver', 'state': 'CO'}


class TestJsonHandling:

    @pytest.mark.parametrize('status,fragment', [
        (401, 'denied'), (403, 'denied'), (429, 'rate limit'), (500, 'HTTP 500'),
    ])
    def test_http_errors(self, status, fragment):
        http = MagicMock()
        http.get.return_value = response({'error': 'x'}, status=status)
        adapter = LocationDataAdapter('key', 'https://maps.example/api', session=http)
        out = adapter.invoke(INPUTS, 5)
        assert not out.ok
        assert fragment in out.error

    def test_non_json_body(self):
        http = MagicMock()
        http.get.return_value = response(None, text='<html>')
        out = LocationDataAdapter('key', 'https://maps.example', session=http).invoke(INPUTS, 5)
        assert 'non-JSON' in out.error

    def test_missing_key(self):
        out = LocationDataAdapter(None, 'https://maps.example', session=MagicMock()).invoke(INPUTS, 5)
        assert not out.ok
        assert 'API key not configured' in out.error


class TestLocationData:

    def test_search_then_details(self):
        http = MagicMock()
        http.get.side_effect = [
            response({'status': 'OK', 'results': [{'place_id': 'ChIJ123'}]}),
            response({'status': 'OK', 'result': {
                'place_id': 'ChIJ123',
                'formatted_address': '1600 Blake St, Denver, CO 80202, USA',
                'address_components': [
                    {'long_name': 'Denver', 'short_name': 'Denver', 'types': ['locality', 'political']},
                    {'long_name': 'Colorado', 'short_name': 'CO', 'types': ['administrative_area_level_1']},
                ],
                'formatted_phone_number': '(303) 555-0100',
                'website': 'https://milehighdental.example',
                'rating': 4.7, 'user_ratings_total': 131,
                'types': ['dentist', 'health', 'establishment'],
            }}),
        ]
        adapter = LocationDataAdapter('key', 'https://maps.example/api/place', session=http)
        out = adapter.fetch(INPUTS, 5)

        assert out['place_id'] == 'ChIJ123'
        assert out['city'] == 'Denver'
        assert out['state'] == 'CO'
        assert out['industry'] == 'healthcare'
        assert out['has_google_business'] is True
        first_call = http.get.call_args_list[0]
        assert first_call.args[0] == 'https://maps.example/api/place/textsearch/json'
        assert first_call.kwargs['params']['query'] == 'Mile High Dental Denver CO'
        assert first_call.kwargs['timeout'] == 5

    def test_no_results(self):
        http = MagicMock()
        http.get.return_value = response({'status': 'ZERO_RESULTS', 'results': []})
        with pytest.raises(AdapterError, match='No Google listing'):
            LocationDataAdapter('key', 'https://maps.example', session=http).fetch(INPUTS, 5)

    def test_places_error_status(self):
        http = MagicMock()
        http.get.return_value = response({'status': 'REQUEST_DENIED', 'error_message': 'bad key'})
        with pytest.raises(AdapterError, match='REQUEST_DENIED: bad key'):
            LocationDataAdapter('key', 'https://maps.example', session=http).fetch(INPUTS, 5)

    def test_industry_mapping(self):
        assert industry_from_place_types(['point_of_interest', 'plumber']) == 'home_services'
        assert industry_from_place_types(['establishment']) == 'other'
        assert industry_from_place_types(None) == 'other'


class TestReviewsAnalysis:

    def test_summarizes_reviews(self):
        http = MagicMock()
        http.get.return_value = response({'status': 'OK', 'result': {
            'rating': 4.2, 'user_ratings_total': 57,
            'reviews': [
                {'rating': 5, 'text': 'Friendly staff and great quality'},
                {'rating': 1, 'text': 'Way too expensive, slow to respond'},
            ],
        }})
        out = ReviewsAnalysisAdapter('key', 'https://maps.example', session=http).fetch(
            dict(INPUTS, place_id='ChIJ123'), 5)

        assert out['has_online_reviews'] is True
        assert out['average_rating'] == 4.2
        assert out['review_themes']['service'] == 1
        assert out['review_themes']['price'] == 1
        assert out['review_summary'].startswith('57 reviews averaging 4.2; 1 of 2')
        assert http.get.call_args.kwargs['params']['place_id'] == 'ChIJ123'

    def test_no_reviews(self):
        http = MagicMock()
        http.get.return_value = response({'status': 'OK', 'result': {'user_ratings_total': 0, 'reviews': []}})
        out = ReviewsAnalysisAdapter('key', 'https://maps.example', session=http).fetch(
            dict(INPUTS, place_id='x'), 5)
        assert out['has_online_reviews'] is False


class TestWebResearch:

    def test_extracts_contact_and_socials(self):
        markdown = (
            "# Mile High Dental\n\nEmail us: frontdesk@milehighdental.example\n\n"
            "## Cleanings\n\n## Implants\n"
        )
        http = MagicMock()
        http.post.return_value = response({'success': True, 'data': {
            'markdown': markdown,
            'links': ['https://www.facebook.com/milehighdental', 'https://example.com/about'],
        }})
        adapter = WebResearchAdapter('fc-key', 'https://api.firecrawl.example/v1', session=http)
        out = adapter.fetch(dict(INPUTS, website='milehighdental.example'), 5)

        assert out['has_website'] is True
        assert out['email'] == 'frontdesk@milehighdental.example'
        assert out['social_profiles'] == {'facebook': 'https://www.facebook.com/milehighdental'}
        assert out['has_social_media'] is True
        assert out['services'] == ['Cleanings', 'Implants']
        call = http.post.call_args
        assert call.kwargs['json']['url'] == 'https://milehighdental.example'
        assert call.kwargs['headers']['Authorization'] == 'Bearer fc-key'

    def test_no_website(self):
        with pytest.raises(AdapterError, match='No website'):
            WebResearchAdapter('fc-key', 'https://x', session=MagicMock()).fetch(INPUTS, 5)

    def test_scrape_failure(self):
        http = MagicMock()
        http.post.return_value = response({'success': False, 'error': 'blocked'})
        with pytest.raises(AdapterError, match='blocked'):
            WebResearchAdapter('fc-key', 'https://x', session=http).fetch(dict(INPUTS, website='https://a.b'), 5)


class TestSupplementarySources:

    def test_parses_fenced_json(self):
        content = '```json\n{"employee_count": "14", "estimated_revenue": 1200000, ' \
                  '"years_in_business": 11, "owner_name": "Dr. Lee", "directory_listings": ["BBB"]}\n```'
        http = MagicMock()
        http.post.return_value = response({'choices': [{'message': {'content': content}}]})
        adapter = SupplementarySourcesAdapter('pplx', 'https://api.perplexity.example', session=http, model='sonar')
        out = adapter.fetch(INPUTS, 5)

        assert out['employee_count'] == 14
        assert out['estimated_revenue'] == 1200000.0
        assert out['owner_name'] == 'Dr. Lee'
        assert out['directory_listings'] == ['BBB']
        assert 'Denver, CO' in http.post.call_args.kwargs['json']['messages'][0]['content']

    def test_unparseable_reply(self):
        http = MagicMock()
        http.post.return_value = response({'choices': [{'message': {'content': 'I could not find it.'}}]})
        out = SupplementarySourcesAdapter('pplx', 'https://x', session=http).invoke(INPUTS, 5)
        assert 'not valid JSON' in out.error

    def test_parse_json_block_bare(self):
        assert parse_json_block('Here you go: {"a": 1} thanks') == {'a': 1}


class TestStrategyGeneration:

    def _client(self, content):
        client = MagicMock()
        message = MagicMock()
        message.content = content
        client.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])
        return client

    def test_returns_gaps(self):
        client = self._client(json.dumps({
            'competitor_gaps': ['No online booking', 'Few photos'],
            'opportunity_areas': ['Local SEO'],
            'marketing_strategy': 'Start with booking.',
        }))
        adapter = StrategyGenerationAdapter(client, model='gpt-4o-mini')
        out = adapter.fetch(dict(INPUTS, review_summary='57 reviews'), 10)

        assert out['competitor_gaps'] == ['No online booking', 'Few photos']
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == 'gpt-4o-mini'
        assert kwargs['timeout'] == 10
        assert '57 reviews' in kwargs['messages'][0]['content']

    def test_no_client(self):
        out = StrategyGenerationAdapter(None).invoke(dict(INPUTS, review_summary='x'), 5)
        assert 'OpenAI client not configured' in out.error


class TestBreakerRouting:

    def test_open_breaker_fails_pass_without_calling_provider(self, fake_redis):
        breaker = ProviderBreaker('maps', fake_redis, failure_threshold=1, reset_timeout=300)
        fake_redis.set('breaker:maps:state', OPEN)
        fake_redis.set('breaker:maps:opened_at', '9999999999')
        http = MagicMock()
        out = LocationDataAdapter('key', 'https://maps.example', breaker=breaker, session=http).invoke(INPUTS, 5)

        assert not out.ok
        assert out.error.startswith('CircuitOpenError')
        http.get.assert_not_called()

    def test_provider_failure_counted(self, fake_redis):
        breaker = ProviderBreaker('web', fake_redis, failure_threshold=3)
        http = MagicMock()
        http.post.return_value = response({'error': 'x'}, status=502)
        WebResearchAdapter('k', 'https://x', breaker=breaker, session=http).invoke(
            dict(INPUTS, website='https://a.b'), 5)
        assert breaker.failure_count == 1


class TestRegistry:

    def test_build_adapters_covers_graph(self):
        adapters = build_adapters()
        assert set(adapters) == set(DEFAULT_GRAPH.names())
        for name, adapter in adapters.items():
            assert adapter.capability == DEFAULT_GRAPH.get(name).capability
