"""SQLAlchemy model for identity provider configuration rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from samlflow.db.session import Base
from samlflow.db.time import utcnow


class IdentityProvider(Base):
    """Configuration of one external identity provider.

    Rows are maintained by an administrative surface outside this service;
    the login flow only reads them.
    """

    __tablename__ = "saml_provider"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Comma separated list of e-mail domains routed to this provider.
    conf_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    conf_icon: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    enforce_sso: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    proxied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    strict: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    debug: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    sp_certificate: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sp_private_key: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sp_nameid_format: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        default="urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified",
    )

    idp_entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    idp_single_sign_on_service: Mapped[str] = mapped_column(String(255), nullable=False)
    idp_single_logout_service: Mapped[str | None] = mapped_column(String(255), nullable=True)
    idp_certificate: Mapped[str] = mapped_column(Text, nullable=False, default="")

    requested_authn_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_authn_context_comparison: Mapped[str] = mapped_column(
        String(25), nullable=False, default="exact"
    )
    security_nameidencrypted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    security_authnrequestssigned: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    security_logoutrequestsigned: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    security_logoutresponsesigned: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    validate_xml: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    validate_destination: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    lowercase_url_encoding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    date_creation: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def domains(self) -> list[str]:
        """Return the configured e-mail domains, trimmed and lower-cased."""
        if not self.conf_domain:
            return []
        return [part.strip().lower() for part in self.conf_domain.split(",") if part.strip()]

    @property
    def supports_single_logout(self) -> bool:
        return bool(self.idp_single_logout_service)
