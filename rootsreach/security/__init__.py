"""
Access policy and account security for RootsReach.

Static role x resource permission table, role requirements, rate limits and
ownership fields, the login lockout state machine, and request screening.
"""

from .lockout import (LOCK_DURATION, AccountSecurityState,
                      failed_login_pipeline, is_locked, reset_login_update)
from .patterns import SEVERE_PATTERNS, is_severe, scan_request
from .policy import (ADDRESS_REQUIRED, BANK_DETAILS_UPDATE,
                     IDENTITY_VERIFICATION_REQUIRED, INVENTORY_OPERATIONS,
                     ORDER_OPERATIONS, OWNERSHIP_FIELDS, PERMISSIONS,
                     PRODUCT_OPERATIONS, RATE_LIMITS, REQUIREMENT_OK,
                     REQUIREMENTS, WILDCARD, Action, Permission,
                     PermissionSet, RateLimit, Requirement, RequirementResult,
                     Resource, Role, Scope, check_requirements,
                     get_permissions, get_rate_limit,
                     get_required_permission_level, has_permission,
                     is_resource_owner)

__all__ = [
    # Types
    "Role",
    "Resource",
    "Action",
    "Scope",
    "Permission",
    "PermissionSet",
    "WILDCARD",
    "Requirement",
    "RequirementResult",
    "REQUIREMENT_OK",
    "RateLimit",
    # Tables
    "PERMISSIONS",
    "REQUIREMENTS",
    "RATE_LIMITS",
    "OWNERSHIP_FIELDS",
    # Requirement buckets and codes
    "PRODUCT_OPERATIONS",
    "BANK_DETAILS_UPDATE",
    "INVENTORY_OPERATIONS",
    "ORDER_OPERATIONS",
    "IDENTITY_VERIFICATION_REQUIRED",
    "ADDRESS_REQUIRED",
    # Queries
    "has_permission",
    "get_permissions",
    "get_required_permission_level",
    "check_requirements",
    "get_rate_limit",
    "is_resource_owner",
    # Lockout
    "AccountSecurityState",
    "LOCK_DURATION",
    "is_locked",
    "failed_login_pipeline",
    "reset_login_update",
    # Screening
    "scan_request",
    "is_severe",
    "SEVERE_PATTERNS",
]
