"""Tests for AffinityContext: FIFO draining on the owning thread."""

import logging
import threading
import time

import pytest

from affinity import AffinityContext, ContextClosed, Task


class TestPostAndDrain:
    def test_fifo_order_on_owner_thread(self, ui, on_ui):
        seen: list[tuple[int, str]] = []
        for i in range(50):
            ui.post(lambda i=i: seen.append((i, threading.current_thread().name)))

        # Anything posted after the items above runs after them
        on_ui(lambda: None)

        assert [i for i, _ in seen] == list(range(50))
        assert {name for _, name in seen} == {ui.owner_thread.name}

    def test_posts_from_many_threads_never_overlap(self, ui, on_ui):
        lock = threading.Lock()
        state = {"active": 0, "peak": 0, "count": 0}

        def work() -> None:
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            with lock:
                state["active"] -= 1
                state["count"] += 1

        def producer() -> None:
            for _ in range(25):
                ui.post(work)

        producers = [threading.Thread(target=producer) for _ in range(4)]
        for thread in producers:
            thread.start()
        for thread in producers:
            thread.join()
        on_ui(lambda: None)

        assert state["count"] == 100
        assert state["peak"] == 1

    def test_per_producer_order_is_preserved(self, ui, on_ui):
        seen: list[tuple[str, int]] = []

        def producer(tag: str) -> None:
            for i in range(20):
                ui.post(seen.append, (tag, i))

        threads = [threading.Thread(target=producer, args=(tag,)) for tag in "ab"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        on_ui(lambda: None)

        for tag in "ab":
            assert [i for t, i in seen if t == tag] == list(range(20))

    def test_len_counts_queued_items(self):
        context = AffinityContext("idle")
        context.post(lambda: None)
        context.post(lambda: None)
        assert len(context) == 2


class TestOwnership:
    def test_owner_only_on_loop_thread(self, ui, on_ui):
        assert ui.current_thread_is_owner() is False
        assert on_ui(ui.current_thread_is_owner) is True

    def test_unstarted_context_has_no_owner(self):
        context = AffinityContext("idle")
        assert context.owner_thread is None
        assert context.current_thread_is_owner() is False

    def test_run_loop_is_not_reentrant(self, ui, on_ui):
        with pytest.raises(RuntimeError, match="not reentrant"):
            on_ui(ui.run_loop)

    def test_run_loop_on_another_thread_is_rejected(self, ui):
        with pytest.raises(RuntimeError, match="bound to thread"):
            ui.run_loop()

    def test_start_is_idempotent(self, ui):
        thread = ui.owner_thread
        ui.start()
        assert ui.owner_thread is thread

    def test_start_raises_when_another_thread_binds_first(self):
        context = AffinityContext("contested")
        real_run_loop = context.run_loop
        host = threading.Thread(target=real_run_loop, name="host", daemon=True)

        def bind_elsewhere_then_run():
            # Another host binds the context between start()'s check and its thread running
            host.start()
            while context.owner_thread is None:
                time.sleep(0.001)
            real_run_loop()

        context.run_loop = bind_elsewhere_then_run
        errors: list[RuntimeError] = []

        def call_start():
            try:
                context.start()
            except RuntimeError as e:
                errors.append(e)

        starter = threading.Thread(target=call_start, daemon=True)
        starter.start()
        starter.join(timeout=2.0)

        assert not starter.is_alive()
        assert len(errors) == 1
        assert "bound to another thread" in str(errors[0])
        assert context.owner_thread is host

        context.shutdown()
        host.join(timeout=2.0)
        assert not host.is_alive()


class TestShutdown:
    def test_post_after_shutdown_raises(self, ui):
        ui.shutdown()
        with pytest.raises(ContextClosed):
            ui.post(lambda: None)

    def test_post_after_shutdown_raises_with_items_queued(self):
        context = AffinityContext("idle")
        context.post(lambda: None)
        context.shutdown()
        with pytest.raises(ContextClosed) as exc_info:
            context.post(lambda: None)
        assert exc_info.value.context_name == "idle"
        assert len(context) == 1

    def test_loop_drains_queued_items_then_returns(self):
        context = AffinityContext("host")
        seen: list[int] = []
        for i in range(3):
            context.post(seen.append, i)
        context.shutdown()

        # The calling thread hosts the loop; it returns once the queue is empty
        context.run_loop()

        assert seen == [0, 1, 2]
        assert context.owner_thread is threading.current_thread()

    def test_shutdown_stops_started_thread(self):
        context = AffinityContext("short-lived")
        context.start()
        context.shutdown()
        assert context.join(timeout=2.0)

    def test_context_manager_starts_and_stops(self):
        with AffinityContext("managed") as context:
            assert context.owner_thread is not None
        assert context.is_closed
        assert not context.owner_thread.is_alive()


class TestFailures:
    def test_raising_item_is_logged_and_loop_continues(self, ui, on_ui, caplog):
        def boom() -> None:
            raise ValueError("boom")

        with caplog.at_level(logging.ERROR, logger="affinity.context"):
            ui.post(boom)
            assert on_ui(lambda: "still running") == "still running"

        assert "raised on context 'ui'" in caplog.text
        assert "boom" in caplog.text


class TestPendingInspection:
    def test_has_pending_for_matches_owner_task(self):
        context = AffinityContext("idle")
        mine: Task[None] = Task(name="mine")
        other: Task[None] = Task(name="other")

        context.post(lambda: None, owner=mine)

        assert context.has_pending_for(mine)
        assert not context.has_pending_for(other)

    def test_drained_items_are_no_longer_pending(self):
        context = AffinityContext("host")
        task: Task[None] = Task()
        context.post(lambda: None, owner=task)
        context.shutdown()
        context.run_loop()
        assert not context.has_pending_for(task)
