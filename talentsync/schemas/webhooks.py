"""Inbound JobAdder webhook payload."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    def record(self) -> Dict[str, Any]:
        """The ATS record carried by the delivery, as the API would return it."""
        return self.model_dump()


class WebhookTenant(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    tenant_id: str = Field(alias="tenantId", min_length=1)

    @field_validator("tenant_id", mode="before")
    @classmethod
    def _tenant_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    event: str = Field(min_length=1)
    data: WebhookData
    metadata: WebhookTenant
    timestamp: Optional[str] = None
    webhook_id: Optional[str] = Field(default=None, alias="webhookId")
    event_id: Optional[str] = Field(default=None, alias="eventId")

    @property
    def tenant_id(self) -> str:
        return self.metadata.tenant_id

    @property
    def delivery_id(self) -> Optional[str]:
        # webhookId names the subscription, not the delivery
        return self.event_id
