from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from studyq.auth import AccountProfile
from studyq.config import Settings

logger = logging.getLogger("studyq.notifications")

PLATFORM_NAME = "StudyQ Platform"
TEST_RECIPIENT = "test@example.com"


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message: str
    response: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class ConfigurationStatus:
    is_configured: bool
    service_id: str | None
    missing_fields: list[str] = field(default_factory=list)


class CredentialNotifier:
    """Delivers temporary credentials through the EmailJS REST API.

    Delivery is optional: when the notifier is not configured or the request
    fails, the result says so and the caller hands the password out manually.
    """

    BASE_URL = "https://api.emailjs.com"
    SEND_PATH = "/api/v1.0/email/send"

    def __init__(
        self,
        public_key: str | None,
        service_id: str | None,
        template_id: str | None,
        private_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.public_key = public_key
        self.service_id = service_id
        self.template_id = template_id
        self.private_key = private_key
        self._owns_client = http_client is None
        self._http_client = http_client
        self.timeout = httpx.Timeout(timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> "CredentialNotifier":
        return cls(
            public_key=settings.emailjs_public_key,
            service_id=settings.emailjs_service_id,
            template_id=settings.emailjs_template_id,
            private_key=settings.emailjs_private_key,
            http_client=http_client,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(base_url=self.BASE_URL, timeout=self.timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def configuration_status(self) -> ConfigurationStatus:
        missing: list[str] = []
        if not self.public_key:
            missing.append("Public Key")
        if not self.service_id:
            missing.append("Service ID")
        if not self.template_id:
            missing.append("Template ID")
        return ConfigurationStatus(is_configured=not missing, service_id=self.service_id, missing_fields=missing)

    @property
    def is_configured(self) -> bool:
        return self.configuration_status().is_configured

    async def test_configuration(self, to_email: str = TEST_RECIPIENT) -> NotificationResult:
        """Send a throwaway message to check keys, service and template together."""
        if not self.is_configured:
            return NotificationResult(False, "Email delivery not configured")
        result = await self.send(
            {
                "to_email": to_email,
                "subject": "Email configuration test",
                "message": "This is a test email to verify the email configuration.",
                "from_name": PLATFORM_NAME,
            }
        )
        if result.success:
            return NotificationResult(True, "Email configuration test successful", result.response)
        return result

    async def send_credentials(self, profile: AccountProfile, temp_password: str, reason: str = "created") -> NotificationResult:
        if reason == "reset":
            subject = f"{PLATFORM_NAME}: your password has been reset"
        else:
            subject = f"Welcome to {PLATFORM_NAME}"
        params = {
            "to_email": profile.email,
            "to_name": profile.name,
            "user_id": profile.user_id,
            "role": profile.role,
            "temp_password": temp_password,
            "subject": subject,
            "from_name": PLATFORM_NAME,
        }
        return await self.send(params)

    async def send(self, template_params: Mapping[str, Any]) -> NotificationResult:
        status = self.configuration_status()
        if not status.is_configured:
            return NotificationResult(
                False,
                f"Email delivery not configured, missing: {', '.join(status.missing_fields)}",
            )
        payload: dict[str, Any] = {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.public_key,
            "template_params": dict(template_params),
        }
        if self.private_key:
            payload["accessToken"] = self.private_key
        try:
            response = await self.client.post(self.SEND_PATH, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Email delivery request failed: %s", exc)
            return NotificationResult(False, "Failed to send email: request error")
        if response.status_code >= 400:
            logger.warning("Email delivery rejected status=%s body=%s", response.status_code, response.text)
            return NotificationResult(False, f"Failed to send email: status {response.status_code}")
        return NotificationResult(True, "Email sent successfully", {"status": response.status_code, "body": response.text})
