"""Tests for Task state transitions and completion signalling."""

import logging
import threading

import pytest

from affinity import InvalidTaskStateError, Task, TaskCancelledError, TaskStatus, completed_task


class TestTransitions:
    def test_new_task_is_pending(self):
        task: Task[int] = Task(name="fresh")
        assert task.status is TaskStatus.PENDING
        assert not task.done()
        with pytest.raises(InvalidTaskStateError):
            task.result()

    def test_suspend_then_complete(self):
        task: Task[int] = Task()
        task._mark_suspended()
        assert task.status is TaskStatus.SUSPENDED
        assert task._set_result(3)
        assert task.status is TaskStatus.RAN_TO_COMPLETION
        assert task.result() == 3

    def test_terminal_state_is_set_once(self):
        task: Task[int] = Task()
        assert task._set_result(1)
        assert not task._set_result(2)
        assert not task._set_exception(ValueError("late"))
        assert not task.cancel()
        assert task.result() == 1

    def test_suspend_after_completion_is_ignored(self):
        task = completed_task("value")
        task._mark_suspended()
        assert task.status is TaskStatus.RAN_TO_COMPLETION

    def test_faulted_task_reraises_original_error(self):
        error = KeyError("missing")
        task: Task[int] = Task()
        task._set_exception(error)

        assert task.status is TaskStatus.FAULTED
        assert task.exception is error
        with pytest.raises(KeyError) as exc_info:
            task.result()
        assert exc_info.value is error

    def test_cancel_pending_task(self):
        task: Task[int] = Task()
        assert task.cancel()
        assert task.cancelled()
        assert task.status is TaskStatus.CANCELLED
        with pytest.raises(TaskCancelledError):
            task.result()


class TestDoneCallbacks:
    def test_callbacks_run_once_in_registration_order(self):
        task: Task[int] = Task()
        calls: list[tuple[str, int]] = []
        task.add_done_callback(lambda t: calls.append(("first", t.result())))
        task.add_done_callback(lambda t: calls.append(("second", t.result())))

        task._set_result(7)
        task._set_result(8)

        assert calls == [("first", 7), ("second", 7)]

    def test_callback_added_after_completion_runs_immediately(self):
        task = completed_task(5)
        calls: list[int] = []
        task.add_done_callback(lambda t: calls.append(t.result()))
        assert calls == [5]

    def test_cancel_notifies_callbacks(self):
        task: Task[int] = Task()
        statuses: list[TaskStatus] = []
        task.add_done_callback(lambda t: statuses.append(t.status))
        task.cancel()
        assert statuses == [TaskStatus.CANCELLED]

    def test_raising_callback_is_logged_and_others_still_run(self, caplog):
        task: Task[int] = Task(name="noisy")
        calls: list[str] = []

        def bad(_: Task[int]) -> None:
            raise RuntimeError("callback failure")

        task.add_done_callback(bad)
        task.add_done_callback(lambda _: calls.append("ran"))

        with caplog.at_level(logging.ERROR, logger="affinity.task"):
            task._set_result(1)

        assert calls == ["ran"]
        assert "callback failure" in caplog.text


class TestWaitDone:
    def test_wait_done_times_out(self):
        task: Task[int] = Task()
        assert task.wait_done(0.01) is False

    def test_concurrent_waiters_observe_same_outcome(self):
        task: Task[str] = Task()
        observed: list[str] = []
        lock = threading.Lock()
        ready = threading.Barrier(6)

        def waiter() -> None:
            ready.wait()
            assert task.wait_done(5.0)
            with lock:
                observed.append(task.result())

        threads = [threading.Thread(target=waiter) for _ in range(5)]
        for thread in threads:
            thread.start()
        ready.wait()
        task._set_result("shared")
        for thread in threads:
            thread.join(timeout=5.0)

        assert observed == ["shared"] * 5

    def test_completion_from_another_thread_wakes_waiter(self):
        task: Task[int] = Task()
        threading.Timer(0.02, task._set_result, args=(9,)).start()
        assert task.wait_done(5.0)
        assert task.result() == 9


def test_repr_mentions_name_and_status():
    task: Task[int] = Task(name="render")
    assert "render" in repr(task)
    assert "PENDING" in repr(task)
