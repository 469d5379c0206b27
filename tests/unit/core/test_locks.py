"""Tests for per-(request, stage) locks."""

import threading
import time

from deptflow.core.approval.locks import StageLockRegistry


class TestStageLockRegistry:
    def test_released_locks_are_dropped(self):
        locks = StageLockRegistry()
        with locks.hold(1, "DEPT_HEAD"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_same_key_is_exclusive(self):
        locks = StageLockRegistry()
        order = []
        entered = threading.Event()

        def first():
            with locks.hold(1, "DEPT_HEAD"):
                entered.set()
                time.sleep(0.05)
                order.append("first")

        def second():
            entered.wait()
            with locks.hold(1, "DEPT_HEAD"):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert order == ["first", "second"]
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = StageLockRegistry()
        with locks.hold(1, "DEPT_HEAD"):
            acquired = []

            def other():
                with locks.hold(1, "AF_REVIEW"):
                    acquired.append(True)

            t = threading.Thread(target=other)
            t.start()
            t.join(timeout=5)
            assert acquired == [True]

    def test_released_on_exception(self):
        locks = StageLockRegistry()
        try:
            with locks.hold(2, "CG_REVIEW"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert len(locks) == 0
        with locks.hold(2, "CG_REVIEW"):
            pass
