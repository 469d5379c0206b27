"""Tests for initial and next stage resolution."""

from types import SimpleNamespace

import pytest

from deptflow.core.approval.resolver import StageResolver
from deptflow.core.approval.states import DepartmentClass, StageCode
from deptflow.core.policy.engine import PolicyEngine
from deptflow.core.policy.store import PolicyStore

from tests.factories import add_heads


DEPARTMENT_IDS = {"D15": 15, "D19": 19, "D21": 21, "D50": 50, "AF": 30}


@pytest.fixture
def store():
    store = PolicyStore()
    add_heads(store, "D15", "hd_a", "hd_b")
    add_heads(store, "D21", "hd_c")
    add_heads(store, "AF", "hd_af")
    # D19 and D50 have no head
    return store


@pytest.fixture
def rules():
    return {
        (19, "DEPT_HEAD"): SimpleNamespace(min_approvers=1, fallback_role="AMD"),
        (15, "DEPT_HEAD"): SimpleNamespace(min_approvers=2, fallback_role=None),
    }


@pytest.fixture
def resolver(store, rules):
    return StageResolver(
        PolicyEngine(store),
        lambda department_id, stage: rules.get((department_id, stage)),
        head_role="HD",
        financial_control_departments=["AF", "CG"],
    )


def initial(resolver, code, requester=None):
    return resolver.initial_stage(DEPARTMENT_IDS[code], code, requester=requester)


class TestDepartmentClass:
    def test_classification(self, resolver):
        assert resolver.department_class("AF") is DepartmentClass.FINANCIAL_CONTROL
        assert resolver.department_class("CG") is DepartmentClass.FINANCIAL_CONTROL
        assert resolver.department_class("D15") is DepartmentClass.STANDARD


class TestNextStage:
    def test_three_step_department(self, resolver):
        assert resolver.next_stage("D15", "DEPT_HEAD") is StageCode.AF_REVIEW
        assert resolver.next_stage("D15", "AF_REVIEW") is StageCode.CG_REVIEW
        assert resolver.next_stage("D15", "CG_REVIEW") is None

    def test_one_step_department(self, resolver):
        assert resolver.next_stage("AF", "DEPT_HEAD") is None

    def test_unknown_stage(self, resolver):
        with pytest.raises(ValueError):
            resolver.next_stage("D15", "NOPE")

    def test_remaining_stages(self, resolver):
        assert resolver.remaining_stages("D15", "DEPT_HEAD") == [
            StageCode.AF_REVIEW,
            StageCode.CG_REVIEW,
        ]
        assert resolver.remaining_stages("D15", "CG_REVIEW") == []
        assert resolver.remaining_stages("AF", "DEPT_HEAD") == []


class TestInitialStage:
    def test_department_with_heads(self, resolver):
        assert initial(resolver, "D15", requester="someone") is StageCode.DEPT_HEAD

    def test_one_of_several_heads_does_not_skip(self, resolver):
        assert initial(resolver, "D15", requester="hd_a") is StageCode.DEPT_HEAD

    def test_no_head_with_fallback_role(self, resolver):
        assert initial(resolver, "D19", requester="someone") is StageCode.AMD_REVIEW

    def test_no_head_without_fallback_waits(self, resolver):
        assert initial(resolver, "D50", requester="someone") is StageCode.DEPT_HEAD

    def test_sole_head_skips_own_stage(self, resolver):
        assert initial(resolver, "D21", requester="hd_c") is StageCode.AF_REVIEW

    def test_sole_head_of_single_step_department_goes_to_fallback(self, resolver):
        assert initial(resolver, "AF", requester="hd_af") is StageCode.AMD_REVIEW

    def test_wildcard_head_counts_as_holder(self, store, resolver):
        store.grant("HD", "*", "requests", "approve:DEPT_HEAD")
        store.assign_role("roaming", "HD", "*")
        # D19 now has an eligible head, so no fallback
        assert initial(resolver, "D19", requester="someone") is StageCode.DEPT_HEAD
        # hd_c is no longer the only head in D21
        assert initial(resolver, "D21", requester="hd_c") is StageCode.DEPT_HEAD
