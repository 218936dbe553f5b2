from .engine import AuthorizationEngine
from .ownership import OwnershipRegistry, build_ownership_registry
from .resolver import MembershipResolver, SubjectResolver

__all__ = [
    "AuthorizationEngine",
    "MembershipResolver",
    "OwnershipRegistry",
    "SubjectResolver",
    "build_ownership_registry",
]
