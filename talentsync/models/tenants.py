"""Tenant and ATS connection models."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from talentsync.models.base import BaseModel


class Tenant(BaseModel):
    """
    An isolated customer account.

    Every other row in the system carries a tenant_id; tenants are never merged.
    """

    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Optional: email_subject, application_base_url, company_name
    retargeting_config = Column(JSON, nullable=True)

    connection = relationship("ATSConnection", back_populates="tenant", uselist=False)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name})>"


class ATSConnection(BaseModel):
    """
    OAuth connection from a tenant to its ATS.

    Tokens and the webhook secret are Fernet-encrypted at rest.
    """

    __tablename__ = "ats_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, unique=True)
    provider = Column(String(50), default="jobadder", nullable=False)

    # Encrypted
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    webhook_secret = Column(Text, nullable=True)

    expires_at = Column(DateTime, nullable=True)

    # connected, broken, disconnected
    status = Column(String(20), default="disconnected", nullable=False)
    last_error = Column(Text, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    webhook_id = Column(String(100), nullable=True)

    tenant = relationship("Tenant", back_populates="connection")

    @property
    def is_connected(self) -> bool:
        return self.status == "connected"

    def __repr__(self) -> str:
        return f"<ATSConnection(tenant_id={self.tenant_id}, status={self.status})>"
