"""
Unit tests for EmailClient retry behaviour, using httpx.MockTransport.
"""
import httpx

from leadmarket.services.email_service import EmailClient


def build_client(settings, responses, sleeps, seen=None):
    """EmailClient whose transport replays `responses` in order."""
    queue = list(responses)

    def handler(request):
        if seen is not None:
            seen.append(request)
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return EmailClient(
        settings,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )


def test_send_email_success(settings):
    sleeps, seen = [], []
    client = build_client(settings, [httpx.Response(200, json={"data": {"succeeded": 1}})], sleeps, seen)

    result = client.send_email("kunde@example.ch", "Hallo", "<p>Hallo</p>")

    assert result.success is True
    assert result.attempts == 1
    assert sleeps == []
    assert seen[0].headers["X-Smtp2go-Api-Key"] == "test-api-key"
    assert str(seen[0].url) == "https://mail.test/v3/email/send"


def test_transient_failures_retry_with_backoff(settings):
    sleeps = []
    client = build_client(settings, [httpx.Response(503)] * 4, sleeps)

    result = client.send_email("kunde@example.ch", "Hallo", "<p>Hallo</p>")

    assert result.success is False
    assert result.permanent is False
    assert result.attempts == 4
    assert sleeps == [1, 2, 4]


def test_recovers_after_transient_failure(settings):
    sleeps = []
    client = build_client(
        settings,
        [httpx.Response(502), httpx.ConnectError("boom"), httpx.Response(200, json={})],
        sleeps,
    )

    result = client.send_email(["a@example.ch", "b@example.ch"], "Hallo", "<p>Hallo</p>")

    assert result.success is True
    assert result.attempts == 3
    assert sleeps == [1, 2]


def test_client_error_is_permanent_without_retry(settings):
    sleeps, seen = [], []
    client = build_client(settings, [httpx.Response(400, text="bad sender")], sleeps, seen)

    result = client.send_email("kunde@example.ch", "Hallo", "<p>Hallo</p>")

    assert result.success is False
    assert result.permanent is True
    assert len(seen) == 1
    assert sleeps == []


def test_missing_api_key_is_permanent(settings):
    sleeps, seen = [], []
    client = build_client(settings.with_overrides(smtp2go_api_key=""), [], sleeps, seen)

    result = client.send_email("kunde@example.ch", "Hallo", "<p>Hallo</p>")

    assert result.success is False
    assert result.permanent is True
    assert seen == []
