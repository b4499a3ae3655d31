"""Tests for prospector.services.notifications — Slack posts never break the pipeline."""
from unittest.mock import patch, MagicMock

import requests

from prospector.models.prospect import Prospect
from prospector.pipeline.base import Attempt, PassResult
from prospector.pipeline.stages import Stage, Transition
from prospector.services.notifications import notify_prospect_qualified, notify_attempt_failures

WEBHOOK = 'https://hooks.slack.example/services/T000/B000/XXX'


def _prospect():
    return Prospect(id='p-1', business_name='Mile High Dental', industry='healthcare', city='Denver',
                    state='CO', qualification_score=78, qualification_level='high',
                    score_breakdown={'business_size': 20, 'location': 15})


class TestQualifiedNotification:

    def test_posts_blocks(self):
        transition = Transition(Stage.INTERESTED, Stage.QUALIFIED, 'score', 'score 78 meets qualify threshold 70')
        with patch('prospector.services.notifications.requests.post') as post:
            post.return_value = MagicMock(raise_for_status=MagicMock())
            assert notify_prospect_qualified(_prospect(), transition, webhook_url=WEBHOOK) is True

        blocks = post.call_args.kwargs['json']['blocks']
        assert 'Mile High Dental' in blocks[0]['text']['text']
        assert any('78/100' in f['text'] for f in blocks[1]['fields'])
        assert 'meets qualify threshold' in blocks[-1]['text']['text']

    def test_no_webhook_configured(self):
        with patch('prospector.services.notifications.SLACK_WEBHOOK_URL', ''), \
                patch('prospector.services.notifications.requests.post') as post:
            assert notify_prospect_qualified(_prospect(), None) is False
        post.assert_not_called()

    def test_http_failure_swallowed(self):
        with patch('prospector.services.notifications.requests.post',
                   side_effect=requests.ConnectionError('no route')):
            assert notify_prospect_qualified(_prospect(), None, webhook_url=WEBHOOK) is False


class TestAttemptFailureNotification:

    def test_lists_failed_and_skipped(self):
        attempt = Attempt('p-1', 2, [
            PassResult.success('location_data', {'place_id': 'x'}),
            PassResult.failed('web_research', 'AdapterError: Firecrawl returned HTTP 502'),
            PassResult.skipped('strategy_generation', 'missing required input: review_summary'),
        ])
        with patch('prospector.services.notifications.requests.post') as post:
            assert notify_attempt_failures(_prospect(), attempt, webhook_url=WEBHOOK) is True

        text = post.call_args.kwargs['json']['blocks'][1]['text']['text']
        assert '`web_research` — failed' in text
        assert '`strategy_generation` — skipped_missing_dependency' in text
        assert 'location_data' not in text

    def test_clean_attempt_sends_nothing(self):
        attempt = Attempt('p-1', 1, [PassResult.success('location_data', {'place_id': 'x'})])
        with patch('prospector.services.notifications.requests.post') as post:
            assert notify_attempt_failures(_prospect(), attempt, webhook_url=WEBHOOK) is False
        post.assert_not_called()
