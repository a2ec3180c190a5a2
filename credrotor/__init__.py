"""Short-lived credential issuing for SQL databases and LDAP directories."""

__version__ = "0.1.0"
