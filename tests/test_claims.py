# tests/test_claims.py
"""Tests for claim mapping and path exclusions."""

import pytest

from samlflow.core.errors import ToolkitValidationFailure
from samlflow.services.claims import resolve_principal
from samlflow.services.exclusions import is_excluded
from samlflow.services.saml_toolkit import Assertion


class TestResolvePrincipal:
    def test_maps_common_claim_uris(self):
        assertion = Assertion(
            id="R1",
            name_id=" jdoe ",
            attributes={
                "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress": ["jdoe@a.com"],
                "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/givenname": ["Jane"],
                "sn": ["", "Doe"],
                "displayName": ["Jane Doe"],
            },
        )

        principal = resolve_principal(assertion)

        assert principal.user_name == "jdoe"
        assert principal.email == "jdoe@a.com"
        assert principal.given_name == "Jane"
        assert principal.surname == "Doe"
        assert principal.display_name == "Jane Doe"

    def test_missing_claims_are_none(self):
        principal = resolve_principal(Assertion(id="R1", name_id="jdoe"))
        assert principal.email is None
        assert principal.surname is None

    @pytest.mark.parametrize("name_id", [None, "", "   "])
    def test_name_id_is_required(self, name_id):
        with pytest.raises(ToolkitValidationFailure):
            resolve_principal(Assertion(id="R1", name_id=name_id))


class TestExclusions:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/health", "/health"),
            ("/static/app.css", "/static/"),
            ("/static", "/static/"),
            ("/statistics", None),
            ("/", None),
        ],
    )
    def test_prefix_matching(self, path, expected):
        assert is_excluded(path, ["/health", "/static/", " "]) == expected

    def test_defaults_come_from_settings(self):
        assert is_excluded("/docs") == "/docs"
