"""Tests for RuntimeLoader: single shared load, failure sharing and retry."""

from __future__ import annotations

import asyncio

import pytest
from fakes import FakeRuntimeFactory, StructlogCapture

from livecode.core.errors import RuntimeLoadError
from livecode.core.logging import LiveCodeLogger
from livecode.core.models import LoadState, RuntimePolicy
from livecode.loader import RuntimeLoader


def make_loader(
    logger: LiveCodeLogger, policy: RuntimePolicy | None = None, **factory_kwargs
) -> tuple[RuntimeLoader, FakeRuntimeFactory]:
    factory = FakeRuntimeFactory(**factory_kwargs)
    policy = policy if policy is not None else RuntimePolicy(optional_packages=[])
    return RuntimeLoader(policy=policy, runtime_factory=factory, logger=logger), factory


class TestSingleLoad:
    """The runtime is booted once no matter how many callers ask for it."""

    @pytest.mark.asyncio
    async def test_initial_state_is_idle(self, loader, factory):
        """Nothing is loaded until the first ensure_ready()."""
        assert loader.state is LoadState.IDLE
        assert loader.runtime is None
        assert loader.load_count == 0
        assert factory.created == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_load(self, livecode_logger):
        """Ten overlapping ensure_ready() calls produce one bootstrap and one boot."""
        loader, factory = make_loader(livecode_logger, start_delay=0.05)

        runtimes = await asyncio.gather(*(loader.ensure_ready() for _ in range(10)))

        assert len(factory.created) == 1
        runtime = factory.latest
        assert all(r is runtime for r in runtimes)
        assert runtime.bootstrap_calls == 1
        assert runtime.start_calls == 1
        assert loader.load_count == 1
        assert loader.state is LoadState.READY

    @pytest.mark.asyncio
    async def test_state_is_loading_while_in_flight(self, livecode_logger):
        """State reads LOADING between the first call and completion."""
        loader, _ = make_loader(livecode_logger, start_delay=0.05)

        task = asyncio.create_task(loader.ensure_ready())
        await asyncio.sleep(0)
        assert loader.state is LoadState.LOADING

        await task
        assert loader.state is LoadState.READY

    @pytest.mark.asyncio
    async def test_ready_runtime_is_reused(self, loader, factory):
        """Later calls return the cached handle without loading again."""
        first = await loader.ensure_ready()
        second = await loader.ensure_ready()

        assert first is second
        assert loader.runtime is first
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_required_packages_loaded(self, loader, factory):
        """A successful load leaves the runtime booted with packages imported."""
        runtime = await loader.ensure_ready()

        assert runtime.is_alive
        assert factory.latest.missing == set()


class TestLoadFailure:
    """Failed loads reach every waiter and are retryable."""

    @pytest.mark.asyncio
    async def test_failure_shared_by_all_waiters(self, livecode_logger):
        """All callers of a failed attempt see the same error instance."""
        loader, factory = make_loader(
            livecode_logger, start_errors=[RuntimeLoadError("Kernel exited during startup")],
            start_delay=0.02,
        )

        results = await asyncio.gather(
            *(loader.ensure_ready() for _ in range(5)), return_exceptions=True
        )

        assert all(isinstance(r, RuntimeLoadError) for r in results)
        assert all(r is results[0] for r in results)
        assert len(factory.created) == 1
        assert loader.state is LoadState.ERROR
        assert loader.error == "Kernel exited during startup"

    @pytest.mark.asyncio
    async def test_next_call_after_failure_retries(self, livecode_logger):
        """ERROR is not sticky: the next call starts a fresh attempt."""
        loader, factory = make_loader(
            livecode_logger, start_errors=[RuntimeLoadError("network down")]
        )

        with pytest.raises(RuntimeLoadError):
            await loader.ensure_ready()

        runtime = await loader.ensure_ready()

        assert loader.state is LoadState.READY
        assert loader.error is None
        assert loader.load_count == 2
        assert len(factory.created) == 2
        assert factory.created[0].closed
        assert runtime is factory.created[1]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, livecode_logger):
        """Non-load exceptions surface as RuntimeLoadError with the cause chained."""
        loader, _ = make_loader(livecode_logger, start_errors=[OSError("exec format error")])

        with pytest.raises(RuntimeLoadError, match="OSError: exec format error") as exc_info:
            await loader.ensure_ready()

        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_missing_required_package_fails_load(self, livecode_logger):
        """A required package that does not import aborts the load."""
        loader, factory = make_loader(livecode_logger, missing={"pandas"})

        with pytest.raises(RuntimeLoadError, match="No module named 'pandas'"):
            await loader.ensure_ready()

        assert loader.state is LoadState.ERROR
        assert factory.latest.closed

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, livecode_logger, log_capture: StructlogCapture):
        """A failed load emits runtime.load.failed with the attempt number."""
        loader, _ = make_loader(livecode_logger, start_errors=[RuntimeLoadError("boom")])

        with pytest.raises(RuntimeLoadError):
            await loader.ensure_ready()

        failed = log_capture.named("runtime.load.failed")
        assert len(failed) == 1
        assert failed[0]["attempt"] == 1
        assert failed[0]["error"] == "boom"
        assert failed[0]["level"] == "error"


class TestCancellation:
    """Cancelling one waiter never cancels the shared load."""

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_abort_load(self, livecode_logger):
        loader, factory = make_loader(livecode_logger, start_delay=0.05)

        abandoned = asyncio.create_task(loader.ensure_ready())
        patient = asyncio.create_task(loader.ensure_ready())
        await asyncio.sleep(0)

        abandoned.cancel()
        runtime = await patient

        assert abandoned.cancelled()
        assert runtime is factory.latest
        assert loader.state is LoadState.READY
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_close_cancels_pending_load(self, livecode_logger):
        """close() during a load stops it and leaves the loader IDLE."""
        loader, factory = make_loader(livecode_logger, start_delay=1.0)

        waiter = asyncio.create_task(loader.ensure_ready())
        await asyncio.sleep(0.01)
        await loader.close()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert loader.state is LoadState.IDLE
        assert factory.latest.closed


class TestOptionalPackages:
    """Optional packages are best-effort and never fail the load."""

    @pytest.mark.asyncio
    async def test_missing_optional_package_installed(self, livecode_logger, log_capture):
        loader, factory = make_loader(
            livecode_logger, policy=RuntimePolicy(optional_packages=["seaborn"]), missing={"seaborn"}
        )

        await loader.ensure_ready()

        assert factory.latest.installed == ["seaborn"]
        assert log_capture.named("runtime.package.missing")[0]["package"] == "seaborn"
        assert log_capture.named("runtime.package.installed")[0]["package"] == "seaborn"

    @pytest.mark.asyncio
    async def test_present_optional_package_not_installed(self, livecode_logger):
        loader, factory = make_loader(
            livecode_logger, policy=RuntimePolicy(optional_packages=["seaborn"])
        )

        await loader.ensure_ready()

        assert factory.latest.installed == []

    @pytest.mark.asyncio
    async def test_install_disabled_skips_install(self, livecode_logger):
        loader, factory = make_loader(
            livecode_logger,
            policy=RuntimePolicy(optional_packages=["seaborn"], install_missing_optional=False),
            missing={"seaborn"},
        )

        await loader.ensure_ready()

        assert loader.state is LoadState.READY
        assert factory.latest.installed == []

    @pytest.mark.asyncio
    async def test_failed_install_keeps_runtime_usable(self, livecode_logger, log_capture):
        loader, factory = make_loader(
            livecode_logger,
            policy=RuntimePolicy(optional_packages=["seaborn"]),
            missing={"seaborn"},
            uninstallable={"seaborn"},
        )

        runtime = await loader.ensure_ready()

        assert loader.state is LoadState.READY
        assert runtime.is_alive
        unavailable = log_capture.named("runtime.package.unavailable")
        assert unavailable[0]["package"] == "seaborn"
        assert unavailable[0]["level"] == "warning"


class TestInvalidate:
    """Invalidation discards the handle so the next call loads afresh."""

    @pytest.mark.asyncio
    async def test_invalidate_closes_runtime(self, loader, factory, log_capture):
        runtime = await loader.ensure_ready()

        await loader.invalidate("timeout")

        assert loader.state is LoadState.IDLE
        assert loader.runtime is None
        assert runtime.closed
        assert log_capture.named("runtime.invalidated")[0]["reason"] == "timeout"

    @pytest.mark.asyncio
    async def test_reload_after_invalidate(self, loader, factory):
        await loader.ensure_ready()
        await loader.invalidate("crashed")

        runtime = await loader.ensure_ready()

        assert len(factory.created) == 2
        assert runtime is factory.created[1]

    @pytest.mark.asyncio
    async def test_invalidate_named_current_runtime(self, loader):
        runtime = await loader.ensure_ready()

        await loader.invalidate("crashed", runtime)

        assert loader.state is LoadState.IDLE
        assert runtime.closed

    @pytest.mark.asyncio
    async def test_invalidate_stale_runtime_keeps_current(self, loader, factory, log_capture):
        """A handle that was already replaced is closed on its own."""
        stale = await loader.ensure_ready()
        stale.alive = False
        current = await loader.ensure_ready()

        await loader.invalidate("timeout", stale)

        assert stale.closed
        assert not current.closed
        assert loader.state is LoadState.READY
        assert loader.runtime is current
        assert log_capture.named("runtime.invalidated")[-1]["stale"] is True

    @pytest.mark.asyncio
    async def test_dead_runtime_triggers_reload(self, loader, factory):
        """A READY handle whose process died is replaced transparently."""
        first = await loader.ensure_ready()
        first.alive = False

        second = await loader.ensure_ready()

        assert second is not first
        assert loader.load_count == 2

    @pytest.mark.asyncio
    async def test_close_shuts_down_runtime(self, loader):
        runtime = await loader.ensure_ready()

        await loader.close()

        assert runtime.closed
        assert loader.state is LoadState.IDLE
