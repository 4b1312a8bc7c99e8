"""
Notifier
Best-effort push delivery of job outcomes to a user's registered devices.

The transport is chosen once at startup (build_push_transport) and injected:
APNs over HTTP/2 when credentials are configured, a logging transport otherwise.
Android and Expo registrations are logged only.

One attempt per device per event. Per-device errors are logged and collected
in the returned DeliveryReport; nothing is raised to the caller.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import jwt

from app.core.config import Settings, settings
from app.core.logging_config import mask_token
from app.models.user import DevicePlatform

logger = logging.getLogger(__name__)

APNS_PRODUCTION_HOST = "https://api.push.apple.com"
APNS_SANDBOX_HOST = "https://api.sandbox.push.apple.com"
APNS_TOKEN_TTL = 50 * 60  # Apple rejects provider tokens older than an hour


@dataclass
class PushMessage:
    title: str
    body: str
    type: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeviceRegistration:
    token: str
    platform: str = DevicePlatform.IOS


@dataclass
class DeliveryReport:
    attempted: int = 0
    delivered: int = 0
    skipped: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)  # (masked token, error)


class PushDeliveryError(Exception):
    def __init__(self, message: str, unregistered: bool = False):
        super().__init__(message)
        self.unregistered = unregistered


class PushTransport(ABC):
    """Delivers one message to one iOS device token."""

    name = "transport"

    @abstractmethod
    async def send(self, device_token: str, message: PushMessage) -> None:
        """Raise PushDeliveryError when the push is not accepted."""
        pass

    async def aclose(self):
        pass


class LoggingPushTransport(PushTransport):
    """Used when APNs credentials are missing: logs what would be sent."""

    name = "log"

    async def send(self, device_token: str, message: PushMessage) -> None:
        logger.info(f"[Push] [iOS] Would send to device {mask_token(device_token)}: {message.title} - {message.body}")


def build_apns_payload(message: PushMessage) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "aps": {
            "alert": {"title": message.title, "body": message.body},
            "badge": 1,
            "sound": "default",
        }
    }
    if message.type:
        payload["type"] = message.type
    payload.update(message.data)
    return payload


class APNsTransport(PushTransport):
    """
    APNs provider API with token (.p8) authentication.

    Args:
        key_id: APNs auth key id (kid)
        team_id: Apple developer team id (iss)
        signing_key: Contents of the .p8 private key
        bundle_id: App bundle id, sent as apns-topic
        production: Use the production gateway instead of the sandbox
    """

    name = "apns"

    def __init__(
        self,
        key_id: str,
        team_id: str,
        signing_key: str,
        bundle_id: str,
        production: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.key_id = key_id
        self.team_id = team_id
        self.signing_key = signing_key
        self.bundle_id = bundle_id
        self.host = APNS_PRODUCTION_HOST if production else APNS_SANDBOX_HOST
        self._client = client or httpx.AsyncClient(http2=True, timeout=10.0)
        self._token: Optional[str] = None
        self._token_issued_at = 0.0

    @classmethod
    def from_settings(cls, config: Settings) -> "APNsTransport":
        with open(config.APN_KEY_PATH, "r") as f:
            signing_key = f.read()
        return cls(
            key_id=config.APN_KEY_ID,
            team_id=config.APN_TEAM_ID,
            signing_key=signing_key,
            bundle_id=config.APN_BUNDLE_ID,
            production=config.APN_PRODUCTION,
        )

    def _provider_token(self) -> str:
        now = time.time()
        if self._token is None or now - self._token_issued_at > APNS_TOKEN_TTL:
            self._token = jwt.encode(
                {"iss": self.team_id, "iat": int(now)},
                self.signing_key,
                algorithm="ES256",
                headers={"kid": self.key_id},
            )
            self._token_issued_at = now
        return self._token

    async def send(self, device_token: str, message: PushMessage) -> None:
        headers = {
            "authorization": f"bearer {self._provider_token()}",
            "apns-topic": self.bundle_id,
            "apns-push-type": "alert",
            "apns-priority": "10",
        }
        try:
            response = await self._client.post(
                f"{self.host}/3/device/{device_token}",
                json=build_apns_payload(message),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise PushDeliveryError(f"APNs request failed: {e}") from e

        if response.status_code == 200:
            return

        try:
            reason = response.json().get("reason", "")
        except ValueError:
            reason = response.text
        raise PushDeliveryError(
            f"APNs rejected push ({response.status_code}): {reason}",
            unregistered=response.status_code == 410 or reason in ("BadDeviceToken", "Unregistered"),
        )

    async def aclose(self):
        await self._client.aclose()


def build_push_transport(config: Settings = settings) -> PushTransport:
    """Choose the push transport once, from explicit configuration."""
    if not config.apns_configured:
        logger.warning(
            "[Push] APNs credentials not configured (APN_KEY_ID, APN_TEAM_ID, APN_KEY_PATH). "
            "Push notifications will be logged only."
        )
        return LoggingPushTransport()

    try:
        transport = APNsTransport.from_settings(config)
    except OSError as e:
        logger.error(f"[Push] Could not read APNs key {config.APN_KEY_PATH}: {e}. Falling back to log-only push.")
        return LoggingPushTransport()

    logger.info(f"[Push] APNs initialized for {'production' if config.APN_PRODUCTION else 'sandbox'}")
    return transport


class Notifier:
    """
    Sends terminal-state messages to every active device of a user.

    Args:
        transport: iOS push transport
        token_lookup: owner_id -> active DeviceRegistration list
        on_unregistered: Called with a token APNs reports as no longer valid
    """

    def __init__(
        self,
        transport: PushTransport,
        token_lookup: Callable[[str], List[DeviceRegistration]],
        on_unregistered: Optional[Callable[[str], Any]] = None,
    ):
        self.transport = transport
        self.token_lookup = token_lookup
        self.on_unregistered = on_unregistered

    async def notify(self, owner_id: str, message: PushMessage) -> DeliveryReport:
        report = DeliveryReport()

        try:
            devices = self.token_lookup(owner_id)
        except Exception as e:
            logger.error(f"[Push] Could not load device tokens for user {owner_id}: {e}")
            report.failures.append(("<lookup>", str(e)))
            return report

        if not devices:
            logger.info(f"[Push] No active device tokens for user {owner_id}")
            return report

        logger.info(f"[Push] Sending '{message.title}' to {len(devices)} device(s) of user {owner_id}")

        for device in devices:
            if device.platform != DevicePlatform.IOS:
                # Android and Expo delivery is not implemented; logged only
                logger.info(
                    f"[Push] [{device.platform}] Would send to device {mask_token(device.token)}: "
                    f"{message.title} - {message.body}"
                )
                report.skipped += 1
                continue

            report.attempted += 1
            try:
                await self.transport.send(device.token, message)
            except Exception as e:
                logger.error(f"[Push] [iOS] Failed to send to device {mask_token(device.token)}: {e}")
                report.failures.append((mask_token(device.token), str(e)))
                if isinstance(e, PushDeliveryError) and e.unregistered and self.on_unregistered:
                    self._forget(device.token, report)
                continue
            report.delivered += 1
            logger.info(f"[Push] [iOS] Sent to device {mask_token(device.token)}")

        return report

    def _forget(self, token: str, report: DeliveryReport):
        try:
            self.on_unregistered(token)
        except Exception as e:
            logger.error(f"[Push] Could not deactivate device {mask_token(token)}: {e}")
            report.failures.append((mask_token(token), f"deactivate failed: {e}"))

    async def training_completed(self, owner_id: str, job_id: str, display_name: str, character_id: str):
        return await self.notify(owner_id, PushMessage(
            title="Training Complete!",
            body=f'Your model "{display_name}" is ready to use',
            type="training_completed",
            data={"modelId": job_id, "characterId": character_id},
        ))

    async def training_failed(self, owner_id: str, job_id: str, display_name: str, reason: str):
        return await self.notify(owner_id, PushMessage(
            title="Training Failed",
            body=f'We couldn\'t train "{display_name}". {reason}',
            type="training_failed",
            data={"modelId": job_id},
        ))

    async def generation_completed(self, owner_id: str, job_id: str, image_urls: List[str]):
        count = len(image_urls)
        return await self.notify(owner_id, PushMessage(
            title="Images Ready!",
            body=f"{count} new image{'s' if count != 1 else ''} {'are' if count != 1 else 'is'} ready to view",
            type="generation_completed",
            data={"generationId": job_id, "imageUrls": image_urls[:4]},
        ))

    async def generation_failed(self, owner_id: str, job_id: str, reason: str, rejected: bool = False):
        return await self.notify(owner_id, PushMessage(
            title="Generation Failed",
            body=reason,
            type="generation_rejected" if rejected else "generation_failed",
            data={"generationId": job_id},
        ))


__all__ = [
    "PushMessage",
    "DeviceRegistration",
    "DeliveryReport",
    "PushDeliveryError",
    "PushTransport",
    "LoggingPushTransport",
    "APNsTransport",
    "build_apns_payload",
    "build_push_transport",
    "Notifier",
]
