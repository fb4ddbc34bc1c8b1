"""SES integration for retargeting notifications.

Email wording lives in SES templates managed outside this service; we only
supply the destination and template parameters.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from talentsync.config import SESConfig
from talentsync.errors import TransientExternalError

logger = structlog.get_logger()

ABANDONED_APPLICATION_TEMPLATE = "abandoned-application"

# SES error codes worth another attempt
TRANSIENT_CODES = {"Throttling", "ThrottlingException", "ServiceUnavailable", "InternalFailure", "RequestTimeout"}


@dataclass
class NotificationResult:
    accepted: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class Notifier(Protocol):
    """Notification collaborator: send(destination, template_params) -> accepted or failed."""

    async def send(self, destination: str, template_params: Dict[str, Any]) -> NotificationResult:
        ...


class SESNotifier:
    """Sends templated emails via AWS SES."""

    def __init__(self, config: SESConfig, template_name: str = ABANDONED_APPLICATION_TEMPLATE, client=None):
        client_kwargs = {
            "region_name": config.region,
            "config": Config(connect_timeout=5, read_timeout=10, retries={"max_attempts": 0}),
        }
        if config.access_key_id and config.secret_access_key:
            client_kwargs["aws_access_key_id"] = config.access_key_id
            client_kwargs["aws_secret_access_key"] = config.secret_access_key
        self.client = client or boto3.client("ses", **client_kwargs)
        self.source = f"{config.from_name} <{config.from_email}>"
        self.template_name = template_name

    def _send_sync(self, destination: str, template_params: Dict[str, Any]) -> str:
        response = self.client.send_templated_email(
            Source=self.source,
            Destination={"ToAddresses": [destination]},
            Template=self.template_name,
            TemplateData=json.dumps(template_params, default=str),
        )
        return response["MessageId"]

    async def send(self, destination: str, template_params: Dict[str, Any]) -> NotificationResult:
        """Send a templated email.

        Returns:
            NotificationResult; rejected messages come back as accepted=False

        Raises:
            TransientExternalError: Throttling, SES outages, network errors
        """
        try:
            message_id = await asyncio.to_thread(self._send_sync, destination, template_params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in TRANSIENT_CODES:
                logger.warning("SES temporarily unavailable", code=code)
                raise TransientExternalError(f"SES {code}", service="ses") from e
            logger.error("SES send failed", error=str(e), code=code)
            return NotificationResult(accepted=False, error=f"{code}: {e}")
        except BotoCoreError as e:
            logger.warning("SES unreachable", error=str(e))
            raise TransientExternalError(f"SES unreachable: {e}", service="ses") from e

        logger.info("Notification sent", message_id=message_id, template=self.template_name)
        return NotificationResult(accepted=True, message_id=message_id)
