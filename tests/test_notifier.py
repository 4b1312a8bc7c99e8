import pytest

from app.core.config import Settings
from app.services.notifier import (
    DeviceRegistration,
    LoggingPushTransport,
    Notifier,
    PushDeliveryError,
    PushMessage,
    build_apns_payload,
    build_push_transport,
)

from conftest import OWNER_ID, RecordingTransport


def make_notifier(devices, transport=None, on_unregistered=None):
    transport = transport or RecordingTransport()
    return transport, Notifier(transport, lambda owner_id: devices, on_unregistered=on_unregistered)


@pytest.mark.asyncio
async def test_sends_to_every_ios_device():
    transport, notifier = make_notifier([
        DeviceRegistration("ios-token-aaaaaaaa", "ios"),
        DeviceRegistration("ios-token-bbbbbbbb", "ios"),
    ])

    report = await notifier.training_completed(OWNER_ID, "job-1", "Me", "char_42")

    assert report.delivered == 2
    assert report.failures == []
    tokens = [token for token, _ in transport.sent]
    assert tokens == ["ios-token-aaaaaaaa", "ios-token-bbbbbbbb"]
    message = transport.sent[0][1]
    assert message.type == "training_completed"
    assert message.data == {"modelId": "job-1", "characterId": "char_42"}


@pytest.mark.asyncio
async def test_non_ios_devices_are_skipped():
    transport, notifier = make_notifier([
        DeviceRegistration("android-token-1234", "android"),
        DeviceRegistration("expo-token-12345678", "expo"),
    ])

    report = await notifier.generation_failed(OWNER_ID, "gen-1", "flagged", rejected=True)

    assert report.skipped == 2
    assert report.attempted == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_one_failing_device_does_not_stop_the_others():
    transport = RecordingTransport(errors={"ios-token-broken00": PushDeliveryError("APNs rejected push (400)")})
    _, notifier = make_notifier(
        [DeviceRegistration("ios-token-broken00", "ios"), DeviceRegistration("ios-token-good0000", "ios")],
        transport=transport,
    )

    report = await notifier.notify(OWNER_ID, PushMessage(title="t", body="b"))

    assert report.attempted == 2
    assert report.delivered == 1
    assert len(report.failures) == 1
    assert [token for token, _ in transport.sent] == ["ios-token-good0000"]


@pytest.mark.asyncio
async def test_unregistered_tokens_are_reported():
    dropped = []
    transport = RecordingTransport(errors={"ios-token-stale000": PushDeliveryError("410", unregistered=True)})
    _, notifier = make_notifier(
        [DeviceRegistration("ios-token-stale000", "ios")],
        transport=transport,
        on_unregistered=dropped.append,
    )

    await notifier.notify(OWNER_ID, PushMessage(title="t", body="b"))

    assert dropped == ["ios-token-stale000"]


@pytest.mark.asyncio
async def test_deactivation_error_is_reported_not_raised():
    def broken_deactivate(token):
        raise RuntimeError("db down")

    transport = RecordingTransport(errors={"ios-token-stale000": PushDeliveryError("410", unregistered=True)})
    _, notifier = make_notifier(
        [DeviceRegistration("ios-token-stale000", "ios"), DeviceRegistration("ios-token-good0000", "ios")],
        transport=transport,
        on_unregistered=broken_deactivate,
    )

    report = await notifier.notify(OWNER_ID, PushMessage(title="t", body="b"))

    assert [token for token, _ in transport.sent] == ["ios-token-good0000"]
    assert report.delivered == 1
    assert any("db down" in reason for _, reason in report.failures)


@pytest.mark.asyncio
async def test_lookup_failure_is_reported_not_raised():
    def broken_lookup(owner_id):
        raise RuntimeError("db down")

    notifier = Notifier(RecordingTransport(), broken_lookup)

    report = await notifier.notify(OWNER_ID, PushMessage(title="t", body="b"))

    assert report.delivered == 0
    assert report.failures[0][1] == "db down"


@pytest.mark.asyncio
async def test_generation_completed_caps_image_urls():
    transport, notifier = make_notifier([DeviceRegistration("ios-token-aaaaaaaa", "ios")])
    urls = [f"https://cdn/{i}.jpg" for i in range(6)]

    await notifier.generation_completed(OWNER_ID, "gen-1", urls)

    message = transport.sent[0][1]
    assert message.body == "6 new images are ready to view"
    assert message.data["imageUrls"] == urls[:4]


def test_apns_payload_shape():
    payload = build_apns_payload(PushMessage(
        title="Images Ready!", body="1 new image is ready to view", type="generation_completed",
        data={"generationId": "gen-1"},
    ))

    assert payload["aps"] == {
        "alert": {"title": "Images Ready!", "body": "1 new image is ready to view"},
        "badge": 1,
        "sound": "default",
    }
    assert payload["type"] == "generation_completed"
    assert payload["generationId"] == "gen-1"


def test_missing_credentials_fall_back_to_logging():
    config = Settings(APN_KEY_ID="", APN_TEAM_ID="", APN_KEY_PATH="")
    assert isinstance(build_push_transport(config), LoggingPushTransport)


def test_unreadable_key_falls_back_to_logging(tmp_path):
    config = Settings(APN_KEY_ID="KEY123", APN_TEAM_ID="TEAM123", APN_KEY_PATH=str(tmp_path / "missing.p8"))
    assert isinstance(build_push_transport(config), LoggingPushTransport)


@pytest.mark.asyncio
async def test_device_registry_feeds_the_notifier(services, transport):
    services.users.register_device_token(OWNER_ID, "ios-token-registered", "ios")
    services.users.register_device_token(OWNER_ID, "android-token-registered", "android")

    report = await services.notifier.training_failed(OWNER_ID, "job-1", "Me", "Training failed")

    assert report.delivered == 1
    assert report.skipped == 1
    assert transport.sent[0][0] == "ios-token-registered"

    services.users.deactivate_device_token("ios-token-registered")
    services.users.deactivate_device_token("android-token-registered")
    assert not services.users.has_active_device_token(OWNER_ID)
