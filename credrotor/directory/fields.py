"""Registry of directory attribute names understood by the client."""

from __future__ import annotations

from enum import Enum

from ..errors import UnknownField


class Field(str, Enum):
    """Known Active Directory attributes, valued by their LDAP names."""

    # Name fields
    COMMON_NAME = "cn"
    DISPLAY_NAME = "displayName"
    GIVEN_NAME = "givenName"
    INITIALS = "initials"
    NAME = "name"
    SAM_ACCOUNT_NAME = "sAMAccountName"
    SURNAME = "sn"

    # Misc. fields
    ACCOUNT_EXPIRES = "accountExpires"
    BAD_PASSWORD_COUNT = "badPwdCount"
    BAD_PASSWORD_TIME = "badPasswordTime"
    CODE_PAGE = "codePage"
    COUNTRY_CODE = "countryCode"
    DISTINGUISHED_NAME = "distinguishedName"
    DOMAIN_COMPONENT = "dc"
    DOMAIN_NAME = "dn"
    DS_CORE_PROPAGATION_DATA = "dSCorePropagationData"
    INSTANCE_TYPE = "instanceType"
    LAST_LOGOFF = "lastLogoff"
    LAST_LOGON = "lastLogon"
    LOGON_COUNT = "logonCount"
    MEMBER_OF = "memberOf"
    OBJECT_CATEGORY = "objectCategory"
    OBJECT_CLASS = "objectClass"
    OBJECT_GUID = "objectGUID"  # never changes
    OBJECT_SID = "objectSid"  # can change on domain migration
    ORGANIZATIONAL_UNIT = "ou"
    PASSWORD_LAST_SET = "pwdLastSet"
    PRIMARY_GROUP_ID = "primaryGroupID"
    SAM_ACCOUNT_TYPE = "sAMAccountType"
    UNICODE_PASSWORD = "unicodePwd"
    UPDATE_SEQUENCE_NUMBER_CHANGED = "uSNChanged"
    UPDATE_SEQUENCE_NUMBER_CREATED = "uSNCreated"
    USER_ACCOUNT_CONTROL = "userAccountControl"
    USER_PRINCIPAL_NAME = "userPrincipalName"
    WHEN_CREATED = "whenCreated"
    WHEN_CHANGED = "whenChanged"

    def __str__(self) -> str:
        return self.value


# LDAP attribute names are case-insensitive.
_BY_NAME: dict[str, Field] = {field.value.lower(): field for field in Field}


def parse_field(name: str) -> Field:
    """Return the registered field for ``name`` or raise ``UnknownField``."""

    try:
        return _BY_NAME[name.lower()]
    except KeyError:
        raise UnknownField(f"No field matches '{name}'.") from None


__all__ = ["Field", "parse_field"]
