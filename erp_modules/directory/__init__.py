"""Internal people directory (faculty and students keyed by UID)."""

from erp_modules.directory.models import InternalIdentity, PersonType

__all__ = ["InternalIdentity", "PersonType"]
