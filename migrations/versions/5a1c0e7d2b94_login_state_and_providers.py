"""login state and identity providers

Revision ID: 5a1c0e7d2b94
Revises:
Create Date: 2026-10-18 09:12:44.315021

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5a1c0e7d2b94"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the provider configuration and login state tables."""
    op.create_table(
        "saml_provider",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("conf_domain", sa.String(length=255), nullable=True),
        sa.Column("conf_icon", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("enforce_sso", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("proxied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("strict", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("debug", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sp_certificate", sa.Text(), nullable=False, server_default=""),
        sa.Column("sp_private_key", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "sp_nameid_format",
            sa.String(length=128),
            nullable=False,
            server_default="urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified",
        ),
        sa.Column("idp_entity_id", sa.String(length=255), nullable=False),
        sa.Column("idp_single_sign_on_service", sa.String(length=255), nullable=False),
        sa.Column("idp_single_logout_service", sa.String(length=255), nullable=True),
        sa.Column("idp_certificate", sa.Text(), nullable=False, server_default=""),
        sa.Column("requested_authn_context", sa.Text(), nullable=True),
        sa.Column(
            "requested_authn_context_comparison",
            sa.String(length=25),
            nullable=False,
            server_default="exact",
        ),
        sa.Column("security_nameidencrypted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("security_authnrequestssigned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("security_logoutrequestsigned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("security_logoutresponsesigned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("validate_xml", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("validate_destination", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("lowercase_url_encoding", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "date_creation",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "login_state",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_name", sa.String(length=255), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("session_name", sa.String(length=255), nullable=False),
        sa.Column("host_authenticated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("provider_authenticated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("login_time", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("location", sa.Text(), nullable=False, server_default=""),
        sa.Column("enforce_logoff", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("excluded_path", sa.Text(), nullable=True),
        sa.Column("provider_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("request_id", sa.String(length=255), nullable=True),
        sa.Column("unsolicited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("response_id", sa.String(length=255), nullable=True),
        sa.Column("phase", sa.SmallInteger(), nullable=False, server_default="1"),
        sa.Column("trace", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("response_id"),
    )
    op.create_index("ix_login_state_session_id", "login_state", ["session_id"])
    op.create_index("ix_login_state_request_id", "login_state", ["request_id"])
    op.create_index("ix_login_state_provider_id", "login_state", ["provider_id"])
    op.create_index("ix_login_state_last_activity", "login_state", ["last_activity"])


def downgrade() -> None:
    """Drop the login state and provider tables."""
    op.drop_index("ix_login_state_last_activity", table_name="login_state")
    op.drop_index("ix_login_state_provider_id", table_name="login_state")
    op.drop_index("ix_login_state_request_id", table_name="login_state")
    op.drop_index("ix_login_state_session_id", table_name="login_state")
    op.drop_table("login_state")
    op.drop_table("saml_provider")
