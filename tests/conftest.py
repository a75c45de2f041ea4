"""Shared pytest fixtures for all tests."""

from __future__ import annotations

from typing import Any

import pytest
import structlog

from fakes import FakeRuntimeFactory, StructlogCapture
from livecode.core.logging import LiveCodeLogger
from livecode.core.models import RuntimePolicy
from livecode.loader import RuntimeLoader


@pytest.fixture
def log_capture() -> StructlogCapture:
    """Fixture providing structlog event capture."""
    return StructlogCapture()


@pytest.fixture
def custom_logger(log_capture: StructlogCapture) -> Any:
    """Fixture providing a structlog logger with capture processor."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            log_capture,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.BoundLogger,
        context_class=dict,
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    return structlog.get_logger("test_livecode")


@pytest.fixture
def livecode_logger(custom_logger: Any) -> LiveCodeLogger:
    return LiveCodeLogger(logger=custom_logger)


@pytest.fixture
def policy() -> RuntimePolicy:
    """Policy without optional packages, so loads only touch required imports."""
    return RuntimePolicy(optional_packages=[])


@pytest.fixture
def factory() -> FakeRuntimeFactory:
    return FakeRuntimeFactory()


@pytest.fixture
def loader(
    policy: RuntimePolicy, factory: FakeRuntimeFactory, livecode_logger: LiveCodeLogger
) -> RuntimeLoader:
    return RuntimeLoader(policy=policy, runtime_factory=factory, logger=livecode_logger)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
