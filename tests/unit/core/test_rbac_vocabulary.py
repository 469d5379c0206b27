"""Tests for permission naming and default role grants."""

from deptflow.core.rbac.permissions import (
    Permission,
    Resource,
    Action,
    approve_action,
    is_wildcard,
)
from deptflow.core.rbac.roles import (
    DEFAULT_GRANTS,
    RoleCode,
    get_default_grants,
    head_grants,
)


class TestPermissionNaming:
    def test_permission_string_format(self):
        assert str(Permission(Resource.REQUESTS.value, Action.VIEW.value)) == "requests:view"

    def test_approve_action_name(self):
        assert approve_action("DEPT_HEAD") == "approve:DEPT_HEAD"

    def test_is_wildcard(self):
        assert is_wildcard("*")
        assert not is_wildcard("D15")


class TestDefaultGrants:
    def test_every_role_has_a_grant(self):
        granted = {g[0] for g in DEFAULT_GRANTS} | {g[0] for g in head_grants("D15")}
        assert granted == {role.value for role in RoleCode}

    def test_cross_department_grants(self):
        grants = set(DEFAULT_GRANTS)
        assert ("CG", "*", "requests", "approve:DEPT_HEAD") in grants
        assert ("CG", "*", "requests", "bulk_approve") in grants
        assert ("AMD", "*", "requests", "approve:AMD_REVIEW") in grants
        assert ("AF", "*", "requests", "approve:AF_REVIEW") in grants
        assert ("ADMIN", "*", "policies", "manage") in grants

    def test_only_cg_bulk_approves(self):
        bulk = [g for g in DEFAULT_GRANTS if g[3] == "bulk_approve"]
        assert [g[0] for g in bulk] == ["CG"]

    def test_head_grants_scoped_to_department(self):
        grants = head_grants("D15")
        assert {g[1] for g in grants} == {"D15"}
        assert ("HD", "D15", "requests", "approve:DEPT_HEAD") in grants

    def test_get_default_grants_returns_copy(self):
        grants = get_default_grants()
        grants.clear()
        assert DEFAULT_GRANTS
