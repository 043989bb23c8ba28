"""
tests/test_fanout.py

Unit tests for dispatcher/fanout.py.
Covers guardian matching, token skipping, failure classification handling,
stale token cleanup, and per-guardian isolation.
All Firebase calls are mocked.
"""

from unittest.mock import AsyncMock

import pytest

from dispatcher.constants import TITLE_PANIC
from dispatcher.fanout import dispatch_alert, handle_alert_created
from dispatcher.schemas import AlertEvent, DeliveryErrorKind, OutcomeKind
from store.firebase import DeliveryError
from tests.fixtures import (
    TEST_DEVICE_ID,
    build_alert_event,
    build_directory,
    build_guardian,
    build_transport,
)


@pytest.mark.asyncio
async def test_panic_alert_sends_one_notification() -> None:
    """Single paired guardian with a token receives exactly one panic push."""
    directory = build_directory([build_guardian(fcm_token="T1")])
    transport = build_transport()

    report = await dispatch_alert(build_alert_event(status="panic"), directory, transport)

    transport.send.assert_awaited_once()
    payload = transport.send.await_args.args[0]
    assert payload.notification.title == TITLE_PANIC
    assert payload.data.latitude == "12.3457"
    assert payload.token == "T1"
    assert report.sent == 1
    assert report.outcomes[0].kind == OutcomeKind.SENT
    directory.remove_token.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_attempts_match_paired_guardians_with_tokens() -> None:
    """Attempts equal guardians paired with the device that hold a token."""
    guardians = [
        build_guardian("g1", TEST_DEVICE_ID, "T1"),
        build_guardian("g2", TEST_DEVICE_ID, "T2"),
        build_guardian("g3", TEST_DEVICE_ID, None),
        build_guardian("g4", TEST_DEVICE_ID, ""),
        build_guardian("g5", "child_02", "T5"),
        build_guardian("g6", None, "T6"),
    ]
    directory = build_directory(guardians)
    transport = build_transport()

    report = await dispatch_alert(build_alert_event(), directory, transport)

    assert transport.send.await_count == 2
    sent_tokens = {call.args[0].token for call in transport.send.await_args_list}
    assert sent_tokens == {"T1", "T2"}
    assert report.attempted == 2
    assert [o.guardian_id for o in report.outcomes] == ["g1", "g2", "g3", "g4"]
    assert [o.kind for o in report.outcomes] == [
        OutcomeKind.SENT,
        OutcomeKind.SENT,
        OutcomeKind.SKIPPED,
        OutcomeKind.SKIPPED,
    ]


@pytest.mark.asyncio
async def test_no_matching_guardians_sends_nothing() -> None:
    directory = build_directory([build_guardian("g1", "child_99", "T1")])
    transport = build_transport()

    report = await dispatch_alert(build_alert_event(), directory, transport)

    transport.send.assert_not_awaited()
    assert report.outcomes == []


@pytest.mark.asyncio
async def test_tokenless_guardian_is_never_cleaned_up() -> None:
    directory = build_directory([build_guardian(fcm_token=None)])
    transport = build_transport()

    report = await dispatch_alert(build_alert_event(), directory, transport)

    transport.send.assert_not_awaited()
    directory.remove_token.assert_not_awaited()
    assert report.outcomes[0].kind == OutcomeKind.SKIPPED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind",
    [DeliveryErrorKind.TOKEN_INVALID, DeliveryErrorKind.TOKEN_UNREGISTERED],
)
async def test_permanent_token_failure_removes_only_that_token(kind) -> None:
    """Only the guardian whose token failed loses its fcmToken field."""
    directory = build_directory(
        [build_guardian("g1", fcm_token="BAD"), build_guardian("g2", fcm_token="GOOD")]
    )
    transport = build_transport()

    async def send(payload):
        if payload.token == "BAD":
            raise DeliveryError(kind, "token rejected")
        return "projects/test/messages/2"

    transport.send = AsyncMock(side_effect=send)

    report = await dispatch_alert(build_alert_event(), directory, transport)

    directory.remove_token.assert_awaited_once_with("g1")
    assert report.tokens_removed == ["g1"]
    failed, sent = report.outcomes
    assert failed.kind == OutcomeKind.FAILED
    assert failed.error_kind == kind
    assert sent.kind == OutcomeKind.SENT


@pytest.mark.asyncio
async def test_other_send_failure_modifies_nothing() -> None:
    directory = build_directory([build_guardian("g1")])
    transport = build_transport()
    transport.send = AsyncMock(
        side_effect=DeliveryError(DeliveryErrorKind.OTHER, "quota exceeded")
    )

    report = await dispatch_alert(build_alert_event(), directory, transport)

    directory.remove_token.assert_not_awaited()
    outcome = report.outcomes[0]
    assert outcome.kind == OutcomeKind.FAILED
    assert outcome.error_kind == DeliveryErrorKind.OTHER
    assert outcome.token_removed is False


@pytest.mark.asyncio
async def test_unexpected_send_error_is_isolated() -> None:
    """A non-classified exception for one guardian does not stop the others."""
    directory = build_directory(
        [build_guardian("g1", fcm_token="T1"), build_guardian("g2", fcm_token="T2")]
    )
    transport = build_transport()
    transport.send = AsyncMock(side_effect=[RuntimeError("boom"), "msg-2"])

    report = await dispatch_alert(build_alert_event(), directory, transport)

    assert transport.send.await_count == 2
    assert report.sent == 1
    directory.remove_token.assert_not_awaited()


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_abort_fanout() -> None:
    directory = build_directory(
        [build_guardian("g1", fcm_token="BAD"), build_guardian("g2", fcm_token="T2")]
    )
    directory.remove_token = AsyncMock(side_effect=RuntimeError("firestore down"))
    transport = build_transport()
    transport.send = AsyncMock(
        side_effect=[
            DeliveryError(DeliveryErrorKind.TOKEN_UNREGISTERED, "not registered"),
            "msg-2",
        ]
    )

    report = await dispatch_alert(build_alert_event(), directory, transport)

    assert report.outcomes[0].kind == OutcomeKind.FAILED
    assert report.outcomes[0].token_removed is False
    assert report.outcomes[1].kind == OutcomeKind.SENT


@pytest.mark.asyncio
async def test_non_mapping_record_uses_generic_template() -> None:
    directory = build_directory([build_guardian()])
    transport = build_transport()
    event = AlertEvent(device_id=TEST_DEVICE_ID, timestamp="1", record="sos")

    await dispatch_alert(event, directory, transport)

    payload = transport.send.await_args.args[0]
    assert payload.notification.title == "🔔 Alert"
    assert payload.data.status == ""


@pytest.mark.asyncio
async def test_handle_alert_created_absorbs_directory_failure() -> None:
    """A failed directory scan is logged and yields a neutral result."""
    directory = build_directory([])
    directory.list_guardians = AsyncMock(side_effect=RuntimeError("unavailable"))
    transport = build_transport()

    result = await handle_alert_created(build_alert_event(), directory, transport)

    assert result is None
    transport.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_alert_created_absorbs_invalid_record() -> None:
    directory = build_directory([build_guardian()])
    transport = build_transport()
    event = AlertEvent(
        device_id=TEST_DEVICE_ID,
        timestamp="1",
        record={"status": "sos", "lat": "not-a-number"},
    )

    result = await handle_alert_created(event, directory, transport)

    assert result is None
    directory.list_guardians.assert_not_awaited()
    transport.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_coordinates_fall_back_for_generic_status() -> None:
    """A status without a location template still notifies with default coordinates."""
    directory = build_directory([build_guardian()])
    transport = build_transport()
    event = AlertEvent(
        device_id=TEST_DEVICE_ID,
        timestamp="1",
        record={"status": "battery", "lat": "n/a", "lng": 56.78901},
    )

    result = await handle_alert_created(event, directory, transport)

    assert result is not None
    assert result.sent == 1
    payload = transport.send.await_args.args[0]
    assert payload.notification.title == "🔔 Alert"
    assert payload.data.status == "battery"
    assert payload.data.latitude == "0"
    assert payload.data.longitude == "56.789"


@pytest.mark.asyncio
async def test_handle_alert_created_returns_report() -> None:
    directory = build_directory([build_guardian()])
    transport = build_transport()

    result = await handle_alert_created(build_alert_event(), directory, transport)

    assert result is not None
    assert result.sent == 1
