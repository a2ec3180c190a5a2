"""Tests for the directory client."""

from __future__ import annotations

import pytest

from credrotor.directory import (
    DirectoryClient,
    Field,
    Username,
    encode_password,
    new_configuration,
    to_dn_string,
    to_filter_string,
)
from credrotor.errors import (
    AmbiguousTarget,
    DirectoryConnectionError,
    InsecureChannel,
    InvalidNameFormat,
    SearchFailed,
)

BASE_DN = {Field.DOMAIN_COMPONENT: ["example", "com"]}
USERS_DN = {Field.ORGANIZATIONAL_UNIT: ["users"], Field.DOMAIN_COMPONENT: ["example", "com"]}


def _client(transport, **overrides) -> DirectoryClient:
    fields = {
        "url": "ldap://dc1.example.com",
        "username": "cn=admin,dc=example,dc=com",
        "password": "admin-secret",
    }
    fields.update(overrides)
    return DirectoryClient(new_configuration(**fields), transport)


def test_dn_and_filter_strings() -> None:
    assert to_dn_string(USERS_DN) == "ou=users,dc=example,dc=com"
    assert to_dn_string({Field.COMMON_NAME: ["Smith, John"]}) == "cn=Smith\\, John"
    assert to_filter_string({Field.COMMON_NAME: ["Ellen Jones"]}) == "(cn=Ellen Jones)"
    assert (
        to_filter_string({Field.COMMON_NAME: ["Ellen Jones"], Field.SURNAME: ["Jones"]})
        == "(&(cn=Ellen Jones)(sn=Jones))"
    )
    assert to_filter_string({Field.COMMON_NAME: ["a*(b)"]}) == "(cn=a\\2a\\28b\\29)"


def test_search_returns_entries_and_drops_unknown_attributes(transport, directory) -> None:
    entries = _client(transport).search(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["becca"]})

    assert [entry.dn for entry in entries] == ["cn=Becca Petrin,ou=users,dc=example,dc=com"]
    entry = entries[0]
    assert entry.get(Field.COMMON_NAME) == ("Becca Petrin",)
    assert entry.get_joined(Field.OBJECT_CLASS) == "top,person,user"
    assert all(field.value != "mail" for field in entry.attributes)
    assert directory.searches == [("dc=example,dc=com", "(sAMAccountName=becca)")]
    assert all(conn.closed for conn in transport.connections)


def test_search_without_matches_is_empty(transport) -> None:
    assert _client(transport).search(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["nobody"]}) == []


def test_search_protocol_errors_become_search_failed(transport, directory) -> None:
    directory.fail_searches = True

    with pytest.raises(SearchFailed, match="operationsError"):
        _client(transport).search(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["becca"]})

    assert transport.connections[0].closed


def test_search_connection_errors_become_search_failed(transport) -> None:
    transport.unreachable = {"dc1.example.com"}

    with pytest.raises(SearchFailed) as excinfo:
        _client(transport).search(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["becca"]})

    assert isinstance(excinfo.value.__cause__, DirectoryConnectionError)
    assert len(excinfo.value.errors) == 1
    assert "dc1.example.com" in str(excinfo.value.errors[0])


def test_update_entry_replaces_values(transport, directory) -> None:
    _client(transport).update_entry(USERS_DN, {Field.SAM_ACCOUNT_NAME: ["tien"]}, {Field.DISPLAY_NAME: ["Tien W. Nguyen"]})

    assert directory.modifications == [
        ("cn=Tien Nguyen,ou=users,dc=example,dc=com", {"displayName": ["Tien W. Nguyen"]})
    ]


def test_update_entry_requires_exactly_one_match(transport, directory) -> None:
    client = _client(transport)

    with pytest.raises(AmbiguousTarget):
        client.update_entry(BASE_DN, {Field.OBJECT_CLASS: ["user"]}, {Field.DISPLAY_NAME: ["x"]})
    with pytest.raises(AmbiguousTarget):
        client.update_entry(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["nobody"]}, {Field.DISPLAY_NAME: ["x"]})

    assert directory.modifications == []


def test_update_password_encodes_for_active_directory(transport, directory) -> None:
    _client(transport).update_password(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["svc-app"]}, "N3wPassw0rd")

    dn, changes = directory.modifications[0]
    assert dn == "cn=svc-app,ou=services,dc=example,dc=com"
    assert changes == {"unicodePwd": ['"N3wPassw0rd"'.encode("utf-16-le")]}


def test_encode_password() -> None:
    assert encode_password("ab") == b'"\x00a\x00b\x00"\x00'


def test_update_password_refuses_plaintext_before_dialing(forbidden_transport) -> None:
    client = _client(forbidden_transport, starttls=False)

    with pytest.raises(InsecureChannel):
        client.update_password(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["svc-app"]}, "pw")


def test_update_password_allows_ldaps_only_urls(transport, directory) -> None:
    client = _client(transport, url="ldaps://dc1.example.com,ldaps://dc2.example.com", starttls=False)

    client.update_password(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["svc-app"]}, "pw")

    assert transport.dials[0][0] == "tls"
    assert len(directory.modifications) == 1


def test_update_password_rejects_mixed_plain_urls(forbidden_transport) -> None:
    client = _client(forbidden_transport, url="ldaps://dc1.example.com,ldap://dc2.example.com", starttls=False)

    with pytest.raises(InsecureChannel):
        client.update_password(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["svc-app"]}, "pw")


def test_update_username_writes_name_fields(transport, directory) -> None:
    _client(transport).update_username(
        BASE_DN, {Field.SAM_ACCOUNT_NAME: ["becca"]}, Username(first_name="Becca", initials="A", last_name="Petrin")
    )

    _, changes = directory.modifications[0]
    assert changes == {"displayName": ["Becca A. Petrin"], "givenName": ["Becca"], "sn": ["Petrin"]}


@pytest.mark.parametrize(
    "username",
    [
        Username(first_name="becca", initials="A", last_name="Petrin"),
        Username(first_name="Becca", initials="a", last_name="Petrin"),
        Username(first_name="Becca", initials="A.", last_name="Petrin"),
        Username(first_name="Becca", initials="", last_name="Petrin"),
        Username(first_name="Becca", initials="AB", last_name="Petrin"),
        Username(first_name="Becca", initials="1", last_name="Petrin"),
        Username(first_name="Becca", initials="A", last_name="PETRIN"),
    ],
)
def test_update_username_validates_before_dialing(forbidden_transport, username: Username) -> None:
    client = _client(forbidden_transport)

    with pytest.raises(InvalidNameFormat):
        client.update_username(BASE_DN, {Field.SAM_ACCOUNT_NAME: ["becca"]}, username)
