"""Tests for the background loader"""
import threading

import pytest

from vibe_orchestrator.core.loader import LANE_GENERAL, LANE_WORKTREES, BackgroundLoader
from vibe_orchestrator.models.resource import ResourceClass


@pytest.fixture
def loader():
    loader = BackgroundLoader(4)
    yield loader
    loader.shutdown()


class TestCoalescing:
    """Test that polls of one resource class never overlap."""

    def test_overlapping_requests_run_one_at_a_time(self, loader):
        release = threading.Event()
        lock = threading.Lock()
        running = 0
        max_running = 0
        calls = []

        def make_work(n):
            def work():
                nonlocal running, max_running
                with lock:
                    running += 1
                    max_running = max(max_running, running)
                release.wait(5.0)
                with lock:
                    running -= 1
                calls.append(n)
                return n
            return work

        assert loader.request(ResourceClass.SESSIONS, make_work(1)) is True
        assert loader.request(ResourceClass.SESSIONS, make_work(2)) is False
        assert loader.request(ResourceClass.SESSIONS, make_work(3)) is False
        assert loader.in_flight(ResourceClass.SESSIONS)

        release.set()
        assert loader.wait_idle(5.0)

        assert max_running == 1
        assert calls == [1, 3]
        assert loader.superseded[ResourceClass.SESSIONS] == 1
        assert not loader.in_flight(ResourceClass.SESSIONS)

        results = loader.drain()
        assert [r.value for r in results] == [1, 3]
        assert results[0].generation < results[1].generation

    def test_classes_are_independent(self, loader):
        release = threading.Event()
        loader.request(ResourceClass.SESSIONS, lambda: release.wait(5.0))

        assert loader.request(ResourceClass.WORKTREES, lambda: "listed") is True

        release.set()
        assert loader.wait_idle(5.0)
        values = {r.resource: r.value for r in loader.drain()}
        assert values[ResourceClass.WORKTREES] == "listed"

    def test_errors_become_results(self, loader):
        def work():
            raise RuntimeError("boom")

        loader.request(ResourceClass.WORKTREES, work)
        assert loader.wait_idle(5.0)

        [result] = loader.drain()
        assert not result.ok
        assert isinstance(result.error, RuntimeError)

    def test_actions_cannot_be_requested(self, loader):
        with pytest.raises(ValueError):
            loader.request(ResourceClass.ACTIONS, lambda: None)

    def test_drain_is_empty_when_idle(self, loader):
        assert loader.drain() == []


class TestSubmit:
    """Test command submission."""

    def test_submit_returns_result(self, loader):
        future = loader.submit(LANE_GENERAL, lambda: 42, tag=("attach", "feature"))
        result = future.result(5.0)

        assert result.ok
        assert result.value == 42
        assert result.tag == ("attach", "feature")
        assert result.resource is ResourceClass.ACTIONS
        assert loader.wait_idle(5.0)
        assert loader.drain() == [result]

    def test_submit_never_raises(self, loader):
        def work():
            raise OSError("disk full")

        result = loader.submit(LANE_WORKTREES, work).result(5.0)
        assert isinstance(result.error, OSError)

    def test_worktree_lane_is_serialized(self, loader):
        lock = threading.Lock()
        running = 0
        max_running = 0

        def work():
            nonlocal running, max_running
            with lock:
                running += 1
                max_running = max(max_running, running)
            threading.Event().wait(0.05)
            with lock:
                running -= 1

        futures = [loader.submit(LANE_WORKTREES, work) for _ in range(3)]
        for future in futures:
            future.result(5.0)
        assert max_running == 1

    def test_unknown_lane(self, loader):
        with pytest.raises(ValueError):
            loader.submit("elsewhere", lambda: None)

    def test_submit_after_shutdown(self):
        loader = BackgroundLoader(4)
        loader.shutdown()

        with pytest.raises(RuntimeError):
            loader.submit(LANE_GENERAL, lambda: None)
        assert loader.request(ResourceClass.SESSIONS, lambda: None) is False
