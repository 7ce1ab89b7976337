"""
Access Policy Table

Declarative role x resource permissions for the marketplace, the extra
preconditions some roles must meet, per-role request limits, and the fields
that identify who owns a document.

The tables are built once at import time from read-only mappings, tuples and
frozen dataclasses. There is no mutation path, so any number of callers may
read them concurrently.

Usage:
    from rootsreach.security import has_permission, check_requirements

    if has_permission("artisan", "product", "update", "own"):
        result = check_requirements("artisan", "productOperations", account)
        if not result.valid:
            ...  # present result.message / result.code to the caller
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..constants import ROLE_RATE_LIMIT_WINDOW_SECONDS


class Role(str, Enum):
    """Account category of the caller. One role per account."""

    CUSTOMER = "customer"
    ARTISAN = "artisan"
    DISTRIBUTOR = "distributor"
    ADMIN = "admin"


class Resource(str, Enum):
    """Protected entity types."""

    USER = "user"
    ARTISAN = "artisan"
    DISTRIBUTOR = "distributor"
    PRODUCT = "product"
    ORDER = "order"
    INVENTORY = "inventory"
    ADDRESS = "address"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Scope(str, Enum):
    """Which instances of a resource a permission covers."""

    OWN = "own"
    PUBLIC = "public"
    ALL = "all"


class Requirement(str, Enum):
    """Preconditions evaluated against the caller's own account."""

    IDENTITY_VERIFIED = "identity_verified"
    COMPLETE_ADDRESS = "complete_address"


# Requirement bucket keys. These name action categories, not resources.
PRODUCT_OPERATIONS = "productOperations"
BANK_DETAILS_UPDATE = "bankDetailsUpdate"
INVENTORY_OPERATIONS = "inventoryOperations"
ORDER_OPERATIONS = "orderOperations"

IDENTITY_VERIFICATION_REQUIRED = "IDENTITY_VERIFICATION_REQUIRED"
ADDRESS_REQUIRED = "ADDRESS_REQUIRED"


@dataclass(frozen=True)
class Permission:
    """
    A single `<action>:<scope>` grant, or the `*` wildcard.

    The wildcard has neither action nor scope and grants everything.
    """

    action: Action | None = None
    scope: Scope | None = None

    @property
    def is_wildcard(self) -> bool:
        return self.action is None

    @classmethod
    def parse(cls, text: str) -> "Permission":
        """
        Parse the string form used in the permission table.

        Raises:
            ValueError: If the action or scope is not a known value
        """
        if text == "*":
            return WILDCARD
        action, sep, scope = text.partition(":")
        if not sep:
            raise ValueError(f"Permission must look like '<action>:<scope>', got {text!r}")
        return cls(Action(action), Scope(scope))

    def grants(self, action: Action, scope: Scope) -> bool:
        """True if this entry covers `action` with `scope` (`all` subsumes the rest)."""
        if self.is_wildcard:
            return True
        return self.action == action and self.scope in (scope, Scope.ALL)

    def __str__(self) -> str:
        if self.is_wildcard:
            return "*"
        return f"{self.action.value}:{self.scope.value}"


WILDCARD = Permission()


class PermissionSet:
    """
    Immutable permission entries for one (resource, role) cell.

    Entries keep their declaration order, which `level_for` relies on.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[Permission | str] = ()):
        parsed = tuple(
            entry if isinstance(entry, Permission) else Permission.parse(entry) for entry in entries
        )
        object.__setattr__(self, "_entries", parsed)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("PermissionSet is immutable")

    @property
    def entries(self) -> tuple[Permission, ...]:
        return self._entries

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            try:
                item = Permission.parse(item)
            except ValueError:
                return False
        return item in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionSet):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __repr__(self) -> str:
        return f"PermissionSet({[str(p) for p in self._entries]})"

    def allows(self, action: Action, scope: Scope) -> bool:
        return any(entry.grants(action, scope) for entry in self._entries)

    def level_for(self, action: Action) -> Scope | None:
        """Scope of the first entry declared for `action`, or None."""
        for entry in self._entries:
            if entry.action == action:
                return entry.scope
        return None


@dataclass(frozen=True)
class RateLimit:
    """Request limit: at most `max_attempts` within `window_seconds`."""

    max_attempts: int = 5
    window_seconds: int = 300

    def to_dict(self) -> dict[str, int]:
        return {
            "max_attempts": self.max_attempts,
            "window_seconds": self.window_seconds,
        }


@dataclass(frozen=True)
class RequirementResult:
    """Outcome of a requirement check. `code` is stable for client remediation."""

    valid: bool
    message: str | None = None
    code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "message": self.message, "code": self.code}


REQUIREMENT_OK = RequirementResult(valid=True)

_REQUIREMENT_FAILURES: Mapping[Requirement, RequirementResult] = MappingProxyType(
    {
        Requirement.IDENTITY_VERIFIED: RequirementResult(
            valid=False,
            message="Identity verification required for this action",
            code=IDENTITY_VERIFICATION_REQUIRED,
        ),
        Requirement.COMPLETE_ADDRESS: RequirementResult(
            valid=False,
            message="Complete address is required for this action",
            code=ADDRESS_REQUIRED,
        ),
    }
)


# ============================================================================
# TABLES
# ============================================================================

_ADMIN = ("read:all", "create:all", "update:all", "delete:all")
_OWN_CRUD = ("read:own", "create:own", "update:own", "delete:own")

_PERMISSION_SOURCE: dict[Resource, dict[Role, tuple[str, ...]]] = {
    Resource.USER: {
        Role.CUSTOMER: ("read:own", "update:own"),
        Role.ARTISAN: ("read:own", "read:public", "update:own"),
        Role.DISTRIBUTOR: ("read:own", "read:public", "update:own"),
        Role.ADMIN: _ADMIN,
    },
    Resource.ARTISAN: {
        Role.CUSTOMER: ("read:public",),
        Role.ARTISAN: ("read:public", "create:own", "update:own"),
        Role.DISTRIBUTOR: ("read:public",),
        Role.ADMIN: _ADMIN,
    },
    Resource.DISTRIBUTOR: {
        Role.CUSTOMER: ("read:public",),
        Role.ARTISAN: ("read:public",),
        Role.DISTRIBUTOR: ("read:public", "create:own", "update:own"),
        Role.ADMIN: _ADMIN,
    },
    Resource.PRODUCT: {
        Role.CUSTOMER: ("read:public",),
        Role.ARTISAN: ("read:all", "create:own", "update:own", "delete:own"),
        Role.DISTRIBUTOR: ("read:all",),
        Role.ADMIN: _ADMIN,
    },
    Resource.ORDER: {
        Role.CUSTOMER: ("read:own", "create:own"),
        Role.ARTISAN: ("read:own", "update:own"),
        Role.DISTRIBUTOR: ("read:own", "update:own"),
        Role.ADMIN: _ADMIN,
    },
    Resource.INVENTORY: {
        Role.CUSTOMER: (),
        Role.ARTISAN: (),
        Role.DISTRIBUTOR: _OWN_CRUD,
        Role.ADMIN: _ADMIN,
    },
    Resource.ADDRESS: {
        Role.CUSTOMER: _OWN_CRUD,
        Role.ARTISAN: _OWN_CRUD,
        Role.DISTRIBUTOR: _OWN_CRUD,
        Role.ADMIN: _ADMIN,
    },
}

PERMISSIONS: Mapping[Resource, Mapping[Role, PermissionSet]] = MappingProxyType(
    {
        resource: MappingProxyType(
            {role: PermissionSet(entries) for role, entries in rows.items()}
        )
        for resource, rows in _PERMISSION_SOURCE.items()
    }
)

REQUIREMENTS: Mapping[Role, Mapping[str, tuple[Requirement, ...]]] = MappingProxyType(
    {
        Role.ARTISAN: MappingProxyType(
            {
                PRODUCT_OPERATIONS: (Requirement.IDENTITY_VERIFIED,),
                BANK_DETAILS_UPDATE: (Requirement.IDENTITY_VERIFIED,),
            }
        ),
        Role.DISTRIBUTOR: MappingProxyType(
            {INVENTORY_OPERATIONS: (Requirement.IDENTITY_VERIFIED,)}
        ),
        Role.CUSTOMER: MappingProxyType({ORDER_OPERATIONS: (Requirement.COMPLETE_ADDRESS,)}),
    }
)

# Counting happens in the rate limiter; only the limits live here.
RATE_LIMITS: Mapping[Role, RateLimit] = MappingProxyType(
    {
        Role.CUSTOMER: RateLimit(max_attempts=500, window_seconds=ROLE_RATE_LIMIT_WINDOW_SECONDS),
        Role.ARTISAN: RateLimit(max_attempts=1000, window_seconds=ROLE_RATE_LIMIT_WINDOW_SECONDS),
        Role.DISTRIBUTOR: RateLimit(
            max_attempts=1000, window_seconds=ROLE_RATE_LIMIT_WINDOW_SECONDS
        ),
        Role.ADMIN: RateLimit(max_attempts=5000, window_seconds=ROLE_RATE_LIMIT_WINDOW_SECONDS),
    }
)

OWNERSHIP_FIELDS: Mapping[Resource, tuple[str, ...]] = MappingProxyType(
    {
        Resource.USER: ("_id",),
        Resource.ARTISAN: ("userId",),
        Resource.DISTRIBUTOR: ("userId",),
        Resource.PRODUCT: ("sellerId",),
        Resource.ORDER: ("buyerId", "sellerId"),
        Resource.INVENTORY: ("distributorId",),
        Resource.ADDRESS: ("userId",),
    }
)


# ============================================================================
# QUERIES
# ============================================================================


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    """Return the enum member for `value`, or None if it is not one."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def get_permissions(role: Role | str, resource: Resource | str) -> PermissionSet | None:
    """Permission set for the (resource, role) cell, or None if either is unknown."""
    role_ = _coerce(Role, role)
    resource_ = _coerce(Resource, resource)
    if role_ is None or resource_ is None:
        return None
    return PERMISSIONS.get(resource_, {}).get(role_)


def has_permission(
    role: Role | str,
    resource: Resource | str,
    action: Action | str,
    scope: Scope | str = Scope.OWN,
) -> bool:
    """
    Check whether `role` may perform `action` with `scope` on `resource`.

    True iff the cell contains `<action>:<scope>`, `<action>:all` or `*`.
    Unknown roles, resources, actions or scopes are denied; this never raises.
    """
    permissions = get_permissions(role, resource)
    if not permissions:
        return False

    action_ = _coerce(Action, action)
    scope_ = _coerce(Scope, scope)
    if action_ is None or scope_ is None:
        return False

    return permissions.allows(action_, scope_)


def get_required_permission_level(
    role: Role | str, resource: Resource | str, action: Action | str
) -> str | None:
    """
    Scope granted to `role` for `action` on `resource`.

    Returns the scope of the first matching entry in declaration order, or
    None if the action is not granted at all.
    """
    permissions = get_permissions(role, resource)
    action_ = _coerce(Action, action)
    if not permissions or action_ is None:
        return None

    scope = permissions.level_for(action_)
    return scope.value if scope is not None else None


def _read_field(account: Any, *names: str) -> Any:
    for name in names:
        if isinstance(account, Mapping):
            if name in account:
                return account[name]
        elif hasattr(account, name):
            return getattr(account, name)
    return None


def check_requirements(role: Role | str, category: str, account: Any) -> RequirementResult:
    """
    Evaluate the extra preconditions for `role` in requirement bucket `category`.

    A missing bucket means no extra requirement. Requirements are evaluated in
    order and the first failing one is returned.

    Args:
        role: Caller's role
        category: Requirement bucket, e.g. "productOperations"
        account: Account snapshot (mapping or object) exposing the identity
            verification flag and the address list

    Returns:
        RequirementResult; `valid` is False with a stable `code` on failure
    """
    role_ = _coerce(Role, role)
    buckets = REQUIREMENTS.get(role_) if role_ is not None else None
    if not buckets or category not in buckets:
        return REQUIREMENT_OK

    for requirement in buckets[category]:
        if requirement is Requirement.IDENTITY_VERIFIED:
            if not _read_field(account, "isIdentityVerified", "is_identity_verified"):
                return _REQUIREMENT_FAILURES[requirement]
        elif requirement is Requirement.COMPLETE_ADDRESS:
            if not _read_field(account, "addresses"):
                return _REQUIREMENT_FAILURES[requirement]

    return REQUIREMENT_OK


def get_rate_limit(role: Role | str) -> RateLimit | None:
    """Request limit for `role`, or None for unknown roles."""
    role_ = _coerce(Role, role)
    return RATE_LIMITS.get(role_) if role_ is not None else None


def is_resource_owner(resource: Resource | str, document: Mapping[str, Any], user_id: Any) -> bool:
    """
    Check whether `user_id` owns `document` of type `resource`.

    Orders are owned by both the buyer and the seller. IDs are compared as
    strings so ObjectId and str values match.
    """
    resource_ = _coerce(Resource, resource)
    if resource_ is None or user_id is None or not document:
        return False

    wanted = str(user_id)
    for field_name in OWNERSHIP_FIELDS[resource_]:
        value = document.get(field_name)
        if value is not None and str(value) == wanted:
            return True
    return False
