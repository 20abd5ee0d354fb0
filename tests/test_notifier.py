"""
EmailNotifier against a mocked mail API.
"""

import json

import httpx
import pytest

from helpdesk.core.notifier import EmailNotifier, clean_recipients

pytestmark = pytest.mark.asyncio


def _notifier(handler, max_retries=1) -> EmailNotifier:
    notifier = EmailNotifier(
        api_url="https://mail.test/send",
        api_key="key-123",
        sender="helpdesk@example.com",
        max_retries=max_retries,
    )
    notifier._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return notifier


def test_clean_recipients():
    assert clean_recipients(["a@x.com", None, "", "b@x.com", "a@x.com"]) == ["a@x.com", "b@x.com"]


async def test_send_posts_payload():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(202)

    notifier = _notifier(handler)
    result = await notifier.send(["a@x.com", None, "a@x.com"], "Hello", "Body")
    await notifier.close()

    assert result.ok and result.delivered
    assert captured == [{"from": "helpdesk@example.com", "to": ["a@x.com"], "subject": "Hello", "text": "Body"}]


async def test_send_retries_then_reports_failure():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    notifier = _notifier(handler, max_retries=2)
    result = await notifier.send(["a@x.com"], "Hello", "Body")
    await notifier.close()

    assert not result.ok
    assert result.error
    assert len(calls) == 2


async def test_send_recovers_on_retry():
    responses = iter([httpx.Response(500), httpx.Response(200)])

    notifier = _notifier(lambda request: next(responses), max_retries=2)
    result = await notifier.send(["a@x.com"], "Hello", "Body")
    await notifier.close()

    assert result.ok and result.delivered


async def test_unconfigured_notifier_only_logs():
    notifier = EmailNotifier(api_url=None)
    result = await notifier.send(["a@x.com"], "Hello", "Body")
    assert result.ok
    assert not result.delivered


async def test_dispatch_without_recipients_is_noop():
    notifier = EmailNotifier(api_url=None)
    assert notifier.dispatch([None, ""], "Hello", "Body") is None


async def test_dispatch_runs_in_background():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content)["subject"])
        return httpx.Response(200)

    notifier = _notifier(handler)
    task = notifier.dispatch(["a@x.com"], "Later", "Body")
    assert task is not None
    await notifier.drain()
    await notifier.close()

    assert seen == ["Later"]
    assert task.result().ok
