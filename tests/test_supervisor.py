import asyncio

from inbox_agent.runtime.supervisor import (
    CLEAN_EXIT_CODE,
    FATAL_EXIT_CODE,
    MAX_BACKOFF_S,
    RESTART_EXIT_CODE,
    ProcessControl,
    next_backoff,
    supervise,
)


def _scripted_runner(codes: list[int]):
    calls: list[list[str]] = []

    def runner(command: list[str]) -> int:
        calls.append(command)
        return codes.pop(0)

    return runner, calls


def test_restart_code_restarts_immediately_and_zero_exits():
    runner, calls = _scripted_runner([RESTART_EXIT_CODE, RESTART_EXIT_CODE, CLEAN_EXIT_CODE])
    sleeps: list[float] = []
    assert supervise(["serve"], runner=runner, sleep=sleeps.append) == CLEAN_EXIT_CODE
    assert len(calls) == 3
    assert sleeps == []


def test_crashes_back_off_exponentially_with_cap():
    runner, calls = _scripted_runner([1] * 7 + [CLEAN_EXIT_CODE])
    sleeps: list[float] = []
    supervise(["serve"], runner=runner, sleep=sleeps.append)
    assert sleeps == [1, 2, 4, 8, 16, 30, 30]
    assert len(calls) == 8


def test_backoff_keeps_growing_across_restart_requests():
    runner, _ = _scripted_runner([1, RESTART_EXIT_CODE, 1, CLEAN_EXIT_CODE])
    sleeps: list[float] = []
    supervise(["serve"], runner=runner, sleep=sleeps.append)
    assert sleeps == [1, 2]


def test_max_starts_bounds_the_loop():
    runner, calls = _scripted_runner([1, 1, 1])
    assert supervise(["serve"], runner=runner, sleep=lambda _s: None, max_starts=2) == 1
    assert len(calls) == 2


def test_next_backoff_caps():
    assert next_backoff(1) == 2
    assert next_backoff(MAX_BACKOFF_S) == MAX_BACKOFF_S


def test_process_control_restart_and_fatal_paths():
    async def restart():
        control = ProcessControl()
        control.request_restart(0.01)
        return await asyncio.wait_for(control.wait(), timeout=1.0)

    async def fatal():
        control = ProcessControl()
        loop = asyncio.get_running_loop()
        control.handle_loop_exception(loop, {"message": "boom", "exception": RuntimeError("x")})
        control.stop(CLEAN_EXIT_CODE)
        return await control.wait()

    assert asyncio.run(restart()) == RESTART_EXIT_CODE
    assert asyncio.run(fatal()) == FATAL_EXIT_CODE
