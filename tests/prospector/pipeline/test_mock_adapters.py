"""Tests for prospector.pipeline.mock_adapters — deterministic fakes and failure injection."""
import os
from unittest.mock import patch

import pytest

from prospector.pipeline.graph import DEFAULT_GRAPH
from prospector.pipeline.mock_adapters import build_mock_adapters, MockPassAdapter, MOCK_ADAPTERS


INPUTS = {'prospect_id': 'p-1', 'business_name': 'Rocky Mountain Roofing', 'city': '', 'state': '',
          'industry': 'other', 'website': ''}


class TestMockAdapters:

    def test_one_per_pass(self):
        assert set(MOCK_ADAPTERS) == set(DEFAULT_GRAPH.names())

    def test_outputs_are_declared_keys(self):
        adapters = build_mock_adapters(fail_passes=[], delay=False)
        for name, adapter in adapters.items():
            inputs = dict(INPUTS, place_id='x', review_summary='summary')
            out = adapter.invoke(inputs, 5)
            assert out.ok, name
            assert set(out.outputs) <= set(DEFAULT_GRAPH.get(name).produces), name

    def test_deterministic_per_business(self):
        a = build_mock_adapters(fail_passes=[], delay=False)['supplementary_sources']
        b = build_mock_adapters(fail_passes=[], delay=False)['supplementary_sources']
        assert a.fetch(INPUTS, 5) == b.fetch(INPUTS, 5)

    def test_fake_must_be_provided(self):
        class NoFake(MockPassAdapter):
            pass

        with pytest.raises(TypeError):
            NoFake('web_research', delay=False)

    def test_location_keeps_known_city(self):
        adapter = build_mock_adapters(fail_passes=[], delay=False)['location_data']
        out = adapter.fetch(dict(INPUTS, city='Boulder', state='CO', industry='healthcare'), 5)
        assert out['city'] == 'Boulder'
        assert out['industry'] == 'healthcare'

    def test_fail_passes_argument(self):
        adapters = build_mock_adapters(fail_passes=['web_research'], delay=False)
        out = adapters['web_research'].invoke(INPUTS, 5)
        assert not out.ok
        assert '[MOCK] web_research provider unavailable' in out.error
        assert adapters['location_data'].invoke(INPUTS, 5).ok

    def test_fail_passes_env(self):
        with patch.dict(os.environ, {'FAIL_PASSES': 'location_data, strategy_generation'}):
            adapters = build_mock_adapters(delay=False)
        assert adapters['location_data'].fail
        assert adapters['strategy_generation'].fail
        assert not adapters['reviews_analysis'].fail
