"""Concurrent approvals on the same request and stage.

Uses a file-backed SQLite database so that every thread has its own
connection and session.
"""

import threading
from contextlib import contextmanager

import pytest
from sqlalchemy.orm import sessionmaker

from deptflow.core.approval.locks import StageLockRegistry
from deptflow.core.approval.service import WorkflowCoordinator
from deptflow.core.errors import ConflictError, ForbiddenError, ValidationError
from deptflow.core.policy.engine import PolicyEngine
from deptflow.core.policy.store import PolicyStore
from deptflow.db.models import Approval, ApprovalHistory, ApprovalRequest
from deptflow.db.seed import seed_demo
from deptflow.db.session import build_engine, init_db


pytestmark = pytest.mark.integration


@pytest.fixture
def file_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'deptflow.db'}")
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def shared_policy(file_sessions):
    store = PolicyStore()
    session = file_sessions()
    try:
        seed_demo(session, store)
    finally:
        session.close()
    return PolicyEngine(store)


@pytest.fixture
def shared_locks():
    return StageLockRegistry()


@pytest.fixture
def run_coordinator(file_sessions, shared_policy, shared_locks, settings):
    """Run ``fn(coordinator)`` in a fresh session, closing it afterwards."""

    def _run(fn):
        session = file_sessions()
        try:
            return fn(WorkflowCoordinator(session, shared_policy, locks=shared_locks, settings=settings))
        finally:
            session.close()

    return _run


@pytest.fixture
def d15_request(run_coordinator):
    def _create(coordinator):
        request = coordinator.create_request("user_af_1", 15)
        coordinator.submit_request("user_af_1", request.id)
        return request.id

    return run_coordinator(_create)


def run_in_threads(run_coordinator, calls):
    """Start all calls together; collect results or raised errors in order."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def worker(index, fn):
        barrier.wait()
        try:
            outcomes[index] = run_coordinator(fn)
        except Exception as e:  # noqa: BLE001  collected for assertions
            outcomes[index] = e

    threads = [
        threading.Thread(target=worker, args=(i, fn)) for i, fn in enumerate(calls)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def stage_advances(session, request_id, from_stage):
    return session.query(ApprovalHistory).filter(
        ApprovalHistory.request_id == request_id,
        ApprovalHistory.from_stage == from_stage,
        ApprovalHistory.to_stage != from_stage,
    ).count()


class TestConcurrentApprovals:
    def test_quorum_reached_once(self, file_sessions, run_coordinator, d15_request):
        approvers = ["user_hd_a", "user_hd_b", "user_cg_1"]
        outcomes = run_in_threads(run_coordinator, [
            (lambda c, user=user: c.approve(d15_request, user, "approve").stage_code)
            for user in approvers
        ])

        # A late approver finds the stage closed, either before or while waiting
        for outcome in outcomes:
            assert not isinstance(outcome, Exception) or isinstance(
                outcome, (ConflictError, ForbiddenError)
            )

        session = file_sessions()
        try:
            request = session.get(ApprovalRequest, d15_request)
            assert (request.status, request.stage_code) == ("IN_REVIEW", "AF_REVIEW")
            assert stage_advances(session, d15_request, "DEPT_HEAD") == 1
            assert session.query(Approval).filter(
                Approval.request_id == d15_request,
                Approval.stage_code == "DEPT_HEAD",
            ).count() == 2
        finally:
            session.close()

    def test_same_approver_twice(self, file_sessions, run_coordinator, d15_request):
        outcomes = run_in_threads(run_coordinator, [
            lambda c: c.approve(d15_request, "user_hd_a", "approve").id,
            lambda c: c.approve(d15_request, "user_hd_a", "approve").id,
        ])

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)

        session = file_sessions()
        try:
            assert session.query(Approval).filter(Approval.request_id == d15_request).count() == 1
        finally:
            session.close()

    def test_late_approver_is_not_recorded(
        self, file_sessions, shared_policy, settings, run_coordinator, d15_request
    ):
        """The stage closes between reading the request and taking the lock."""
        run_coordinator(lambda c: c.approve(d15_request, "user_hd_a", "approve"))

        def close_stage():
            run_coordinator(lambda c: c.approve(d15_request, "user_cg_1", "approve"))

        session = file_sessions()
        try:
            late = WorkflowCoordinator(
                session,
                shared_policy,
                locks=InterleavingLocks(close_stage),
                settings=settings,
            )
            with pytest.raises(ConflictError) as exc_info:
                late.approve(d15_request, "user_hd_b", "approve")

            assert exc_info.value.context["current_stage"] == "AF_REVIEW"
            assert not late.ledger.exists(d15_request, "DEPT_HEAD", "user_hd_b")
            assert stage_advances(session, d15_request, "DEPT_HEAD") == 1
            assert stage_advances(session, d15_request, "AF_REVIEW") == 0
        finally:
            session.close()

    def test_late_reject_does_not_report_success(
        self, file_sessions, shared_policy, settings, run_coordinator, d15_request
    ):
        def close_stage():
            run_coordinator(lambda c: c.approve(d15_request, "user_hd_a", "approve"))
            run_coordinator(lambda c: c.approve(d15_request, "user_cg_1", "approve"))

        session = file_sessions()
        try:
            late = WorkflowCoordinator(
                session,
                shared_policy,
                locks=InterleavingLocks(close_stage),
                settings=settings,
            )
            with pytest.raises(ConflictError):
                late.approve(d15_request, "user_hd_b", "reject")

            request = late.requests.find_by_id(d15_request)
            assert (request.status, request.stage_code) == ("IN_REVIEW", "AF_REVIEW")
            assert not late.ledger.exists(d15_request, "DEPT_HEAD", "user_hd_b")
        finally:
            session.close()

    def test_terminal_while_waiting(self, shared_policy, settings, file_sessions, run_coordinator):
        request_id = run_coordinator(lambda c: _submitted(c, 19))

        def finalize():
            run_coordinator(lambda c: c.approve(request_id, "user_amd_1", "approve"))

        session = file_sessions()
        try:
            late = WorkflowCoordinator(
                session, shared_policy, locks=InterleavingLocks(finalize), settings=settings
            )
            with pytest.raises(ForbiddenError):
                late.approve(request_id, "user_cg_1", "approve")
            assert not late.ledger.exists(request_id, "AMD_REVIEW", "user_cg_1")
        finally:
            session.close()


def _submitted(coordinator, department_id):
    request = coordinator.create_request("user_af_1", department_id)
    coordinator.submit_request("user_af_1", request.id)
    return request.id


class InterleavingLocks(StageLockRegistry):
    """Runs ``before_first_hold`` just before the first lock is taken."""

    def __init__(self, before_first_hold):
        super().__init__()
        self._before = before_first_hold

    @contextmanager
    def hold(self, request_id, stage_code):
        if self._before is not None:
            hook, self._before = self._before, None
            hook()
        with super().hold(request_id, stage_code):
            yield
