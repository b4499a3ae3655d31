"""
Notifications — Slack webhook posts for qualification and research events.

Notification failure never blocks the pipeline.
"""
import logging
import requests

from prospector.config import SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')


def _post(blocks, webhook_url=None):
    url = webhook_url or SLACK_WEBHOOK_URL
    if not url:
        return False
    try:
        resp = requests.post(url, json={"blocks": blocks}, timeout=10)
        resp.raise_for_status()
        return True
    except requests.RequestException:
        logger.warning("Slack notification failed", exc_info=True)
        return False


def notify_prospect_qualified(prospect, transition, webhook_url=None):
    """Prospect reached the qualified stage."""
    breakdown = prospect.score_breakdown or {}
    fields = [
        {"type": "mrkdwn", "text": f"*Score:* {prospect.qualification_score}/100"},
        {"type": "mrkdwn", "text": f"*Level:* {prospect.qualification_level}"},
        {"type": "mrkdwn", "text": f"*Location:* {prospect.city or '?'}, {prospect.state or '?'}"},
        {"type": "mrkdwn", "text": f"*Industry:* {prospect.industry or 'other'}"},
    ]
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"Prospect Qualified — {prospect.business_name}"},
        },
        {"type": "section", "fields": fields},
        {
            "type": "context",
            "elements": [{
                "type": "mrkdwn",
                "text": ' · '.join(f"{k.replace('_', ' ')} {v}" for k, v in breakdown.items()),
            }],
        },
    ]
    if transition is not None and transition.reason:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"_{transition.reason}_"}})

    sent = _post(blocks, webhook_url)
    if sent:
        logger.info("Qualified notification sent for %s", prospect.id)
    return sent


def notify_attempt_failures(prospect, attempt, webhook_url=None):
    """Attempt finished with failed or skipped passes — they'll be retried next attempt."""
    problems = attempt.failed + attempt.skipped
    if not problems:
        return False

    lines = [f"• `{r.pass_name}` — {r.outcome.value}: {r.error[:150]}" for r in problems]
    blocks = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"Research attempt #{attempt.number} incomplete — {prospect.business_name}",
            },
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": '\n'.join(lines)}},
    ]
    sent = _post(blocks, webhook_url)
    if sent:
        logger.info("Attempt failure notification sent for %s #%d", prospect.id, attempt.number)
    return sent
