"""
Unit tests for the access policy table.

Tests permission lookups, requirement checks, rate limits and ownership.
"""

from types import SimpleNamespace

import pytest

from rootsreach.security.policy import (ADDRESS_REQUIRED, BANK_DETAILS_UPDATE,
                                        IDENTITY_VERIFICATION_REQUIRED,
                                        INVENTORY_OPERATIONS,
                                        ORDER_OPERATIONS, PERMISSIONS,
                                        PRODUCT_OPERATIONS, RATE_LIMITS,
                                        WILDCARD, Action, Permission,
                                        PermissionSet, Resource, Role, Scope,
                                        check_requirements, get_permissions,
                                        get_rate_limit,
                                        get_required_permission_level,
                                        has_permission, is_resource_owner)


@pytest.mark.unit
class TestHasPermission:
    """Test role x resource permission checks."""

    @pytest.mark.parametrize(
        "role,resource,action,scope",
        [
            ("artisan", "product", "update", "own"),
            ("artisan", "product", "read", "public"),
            ("customer", "product", "read", "public"),
            ("customer", "order", "create", "own"),
            ("distributor", "inventory", "delete", "own"),
            ("distributor", "user", "read", "public"),
            ("admin", "inventory", "delete", "all"),
        ],
    )
    def test_granted(self, role, resource, action, scope):
        """Test entries present in the table are granted."""
        assert has_permission(role, resource, action, scope) is True

    @pytest.mark.parametrize(
        "role,resource,action,scope",
        [
            ("customer", "product", "create", "own"),
            ("customer", "user", "read", "public"),
            ("artisan", "inventory", "read", "own"),
            ("customer", "inventory", "read", "own"),
            ("distributor", "product", "update", "own"),
            ("customer", "order", "update", "own"),
        ],
    )
    def test_denied(self, role, resource, action, scope):
        """Test entries missing from the table are denied."""
        assert has_permission(role, resource, action, scope) is False

    def test_all_scope_subsumes_own_and_public(self):
        """Test that action:all covers narrower scopes for the same action."""
        assert has_permission("artisan", "product", "read", "own") is True
        assert has_permission("distributor", "product", "read", "public") is True
        assert has_permission("admin", "order", "update", "own") is True

    def test_all_scope_does_not_cover_other_actions(self):
        """Test that read:all does not grant update."""
        assert has_permission("distributor", "product", "update", "all") is False

    def test_default_scope_is_own(self):
        """Test scope defaults to own."""
        assert has_permission("customer", "address", "delete") is True
        assert has_permission("customer", "artisan", "read") is False

    def test_accepts_enum_members(self):
        """Test enum members and string values behave the same."""
        assert has_permission(Role.ARTISAN, Resource.PRODUCT, Action.DELETE, Scope.OWN) is True

    @pytest.mark.parametrize(
        "role,resource,action,scope",
        [
            ("superuser", "product", "read", "public"),
            ("customer", "invoice", "read", "own"),
            ("customer", "product", "purge", "public"),
            ("customer", "product", "read", "everything"),
            (None, "product", "read", "public"),
        ],
    )
    def test_unknown_values_are_denied(self, role, resource, action, scope):
        """Test unknown role, resource, action or scope never raises."""
        assert has_permission(role, resource, action, scope) is False

    def test_empty_cell_denies(self):
        """Test a role with no entries for a resource is denied everything."""
        assert len(get_permissions("artisan", "inventory")) == 0
        for action in Action:
            for scope in Scope:
                assert has_permission("artisan", "inventory", action, scope) is False


@pytest.mark.unit
class TestRequiredPermissionLevel:
    """Test get_required_permission_level."""

    def test_first_entry_in_declaration_order(self):
        """Test the first matching entry wins."""
        assert get_required_permission_level("artisan", "user", "read") == "own"
        assert get_required_permission_level("artisan", "product", "read") == "all"

    def test_admin_levels_are_all(self):
        """Test admin rows are declared with :all entries."""
        for resource in Resource:
            for action in Action:
                assert get_required_permission_level("admin", resource, action) == "all"

    def test_missing_action_returns_none(self):
        """Test None when the action is not granted."""
        assert get_required_permission_level("customer", "product", "delete") is None

    def test_unknown_inputs_return_none(self):
        """Test None for unknown role, resource or action."""
        assert get_required_permission_level("guest", "product", "read") is None
        assert get_required_permission_level("customer", "invoice", "read") is None
        assert get_required_permission_level("customer", "product", "purge") is None


@pytest.mark.unit
class TestCheckRequirements:
    """Test role requirement checks."""

    def test_artisan_product_operations_requires_identity(self):
        """Test unverified artisans fail productOperations."""
        result = check_requirements("artisan", PRODUCT_OPERATIONS, {"isIdentityVerified": False})
        assert result.valid is False
        assert result.code == IDENTITY_VERIFICATION_REQUIRED
        assert result.message == "Identity verification required for this action"

    def test_verified_artisan_passes(self):
        """Test verified artisans pass both identity buckets."""
        account = {"isIdentityVerified": True}
        assert check_requirements("artisan", PRODUCT_OPERATIONS, account).valid is True
        assert check_requirements("artisan", BANK_DETAILS_UPDATE, account).valid is True

    def test_distributor_inventory_requires_identity(self):
        """Test the distributor inventory bucket."""
        result = check_requirements("distributor", INVENTORY_OPERATIONS, {})
        assert result.code == IDENTITY_VERIFICATION_REQUIRED

    def test_customer_orders_require_address(self):
        """Test customers need at least one address to order."""
        result = check_requirements("customer", ORDER_OPERATIONS, {"addresses": []})
        assert result.valid is False
        assert result.code == ADDRESS_REQUIRED
        assert result.message == "Complete address is required for this action"

        ok = check_requirements("customer", ORDER_OPERATIONS, {"addresses": [{"city": "Jaipur"}]})
        assert ok.valid is True

    def test_missing_bucket_is_valid(self):
        """Test roles without the bucket have no extra requirement."""
        assert check_requirements("customer", PRODUCT_OPERATIONS, {}).valid is True
        assert check_requirements("admin", ORDER_OPERATIONS, {}).valid is True
        assert check_requirements("nobody", ORDER_OPERATIONS, {}).valid is True

    def test_accepts_objects_with_snake_case_fields(self):
        """Test account objects exposing is_identity_verified."""
        account = SimpleNamespace(is_identity_verified=True, addresses=[])
        assert check_requirements("artisan", PRODUCT_OPERATIONS, account).valid is True

    def test_to_dict(self):
        """Test serialized forms of success and failure."""
        assert check_requirements("customer", PRODUCT_OPERATIONS, {}).to_dict() == {"valid": True}
        failure = check_requirements("customer", ORDER_OPERATIONS, {}).to_dict()
        assert failure == {
            "valid": False,
            "message": "Complete address is required for this action",
            "code": ADDRESS_REQUIRED,
        }


@pytest.mark.unit
class TestRateLimitsAndOwnership:
    """Test per-role limits and ownership lookups."""

    def test_rate_limits(self):
        """Test the per-role request limits."""
        assert get_rate_limit("customer").max_attempts == 500
        assert get_rate_limit("artisan").max_attempts == 1000
        assert get_rate_limit("distributor").max_attempts == 1000
        assert get_rate_limit("admin").max_attempts == 5000
        assert all(limit.window_seconds == 900 for limit in RATE_LIMITS.values())
        assert get_rate_limit("guest") is None

    def test_order_owned_by_buyer_and_seller(self):
        """Test both order parties own the order."""
        order = {"_id": "o1", "buyerId": "b1", "sellerId": "s1"}
        assert is_resource_owner("order", order, "b1") is True
        assert is_resource_owner("order", order, "s1") is True
        assert is_resource_owner("order", order, "x9") is False

    def test_ids_compared_as_strings(self):
        """Test ObjectId-like values match their string form."""
        from bson import ObjectId

        oid = ObjectId()
        assert is_resource_owner("product", {"sellerId": oid}, str(oid)) is True
        assert is_resource_owner("user", {"_id": oid}, oid) is True

    def test_unknown_resource_is_not_owned(self):
        """Test unknown resources return False."""
        assert is_resource_owner("invoice", {"userId": "u1"}, "u1") is False


@pytest.mark.unit
class TestTableImmutability:
    """Test that the tables have no mutation path."""

    def test_permissions_mapping_is_read_only(self):
        """Test assignments to the mapping fail."""
        with pytest.raises(TypeError):
            PERMISSIONS[Resource.PRODUCT] = {}
        with pytest.raises(TypeError):
            PERMISSIONS[Resource.PRODUCT][Role.CUSTOMER] = PermissionSet(["*"])

    def test_permission_set_is_read_only(self):
        """Test PermissionSet rejects attribute assignment."""
        permissions = get_permissions("customer", "product")
        with pytest.raises(AttributeError):
            permissions._entries = ()

    def test_rate_limit_is_frozen(self):
        """Test RateLimit entries cannot be changed."""
        from dataclasses import FrozenInstanceError

        with pytest.raises(FrozenInstanceError):
            RATE_LIMITS[Role.CUSTOMER].max_attempts = 1


@pytest.mark.unit
class TestPermission:
    """Test permission parsing and matching."""

    def test_parse_and_render(self):
        """Test the string form round trips."""
        permission = Permission.parse("read:own")
        assert permission == Permission(Action.READ, Scope.OWN)
        assert str(permission) == "read:own"
        assert str(WILDCARD) == "*"
        assert Permission.parse("*") is WILDCARD

    @pytest.mark.parametrize("text", ["read", "read:forever", "purge:own"])
    def test_parse_rejects_bad_entries(self, text):
        """Test malformed entries raise ValueError."""
        with pytest.raises(ValueError):
            Permission.parse(text)

    def test_wildcard_grants_everything(self):
        """Test a wildcard cell allows any action and scope."""
        permissions = PermissionSet(["*"])
        assert permissions.allows(Action.DELETE, Scope.ALL) is True
        assert permissions.level_for(Action.READ) is None

    def test_contains_accepts_strings(self):
        """Test membership checks with the string form."""
        permissions = get_permissions("customer", "order")
        assert "create:own" in permissions
        assert "delete:own" not in permissions
        assert "garbage" not in permissions
