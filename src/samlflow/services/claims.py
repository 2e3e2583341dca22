"""Map verified assertion claims to a host principal."""

from __future__ import annotations

from dataclasses import dataclass

from samlflow.core.errors import ToolkitValidationFailure
from samlflow.services.saml_toolkit import Assertion

__all__ = ["CLAIM_URIS", "Principal", "resolve_principal"]

CLAIM_URIS: dict[str, tuple[str, ...]] = {
    "email": (
        "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress",
        "urn:oid:0.9.2342.19200300.100.1.3",
        "email",
        "mail",
    ),
    "given_name": (
        "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/givenname",
        "urn:oid:2.5.4.42",
        "givenName",
        "firstname",
    ),
    "surname": (
        "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/surname",
        "urn:oid:2.5.4.4",
        "sn",
        "lastname",
    ),
    "display_name": (
        "http://schemas.microsoft.com/identity/claims/displayname",
        "urn:oid:2.16.840.1.113730.3.1.241",
        "displayName",
    ),
}


@dataclass(frozen=True)
class Principal:
    """Identity the host session is initialised with."""

    user_name: str
    email: str | None = None
    given_name: str | None = None
    surname: str | None = None
    display_name: str | None = None
    user_id: int = 0


def _first(attributes: dict[str, list[str]], names: tuple[str, ...]) -> str | None:
    for name in names:
        values = attributes.get(name) or []
        for value in values:
            if value and value.strip():
                return value.strip()
    return None


def resolve_principal(assertion: Assertion) -> Principal:
    """Build a :class:`Principal` from a validated assertion.

    Raises:
        ToolkitValidationFailure: If the assertion carries no NameID.
    """
    name_id = (assertion.name_id or "").strip()
    if not name_id:
        raise ToolkitValidationFailure("Assertion does not contain a NameID").with_context(
            response_id=assertion.id
        )
    claims = {key: _first(assertion.attributes, uris) for key, uris in CLAIM_URIS.items()}
    return Principal(user_name=name_id, **claims)
