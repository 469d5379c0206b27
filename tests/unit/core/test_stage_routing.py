"""Tests for request statuses and the stage routing table."""

import pytest

from deptflow.core.approval.states import (
    DepartmentClass,
    FALLBACK_STAGE,
    REVIEWABLE_STATUSES,
    ROUTING_TABLE,
    RequestStatus,
    StageCode,
    TERMINAL_STATUSES,
    is_terminal,
    parse_stage,
    route,
)


class TestStatuses:
    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {RequestStatus.APPROVED, RequestStatus.REJECTED}
        assert is_terminal(RequestStatus.APPROVED)
        assert not is_terminal(RequestStatus.IN_REVIEW)
        assert not is_terminal(RequestStatus.DRAFT)

    def test_only_in_review_is_reviewable(self):
        assert REVIEWABLE_STATUSES == {RequestStatus.IN_REVIEW}


class TestRoutingTable:
    def test_table_is_total(self):
        """Every (class, stage) pair has a defined outcome."""
        for cls in DepartmentClass:
            for stage in StageCode:
                assert (cls, stage) in ROUTING_TABLE

    def test_standard_pipeline(self):
        cls = DepartmentClass.STANDARD
        assert route(cls, StageCode.DEPT_HEAD) is StageCode.AF_REVIEW
        assert route(cls, StageCode.AF_REVIEW) is StageCode.CG_REVIEW
        assert route(cls, StageCode.CG_REVIEW) is None
        assert route(cls, StageCode.AMD_REVIEW) is None

    def test_financial_control_is_single_step(self):
        for stage in StageCode:
            assert route(DepartmentClass.FINANCIAL_CONTROL, stage) is None

    def test_fallback_stage(self):
        assert FALLBACK_STAGE is StageCode.AMD_REVIEW


class TestParseStage:
    def test_known_stage(self):
        assert parse_stage("AF_REVIEW") is StageCode.AF_REVIEW

    def test_unknown_stage(self):
        with pytest.raises(ValueError, match="Unknown stage code"):
            parse_stage("LEGAL_REVIEW")
