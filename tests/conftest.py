"""Shared fixtures: batch recorder, controller factory, hook isolation."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator
from typing import Any

import pytest

from chatgate.inbound.hooks import HookRegistry, clear_hooks
from chatgate.inbound.models.config import MessagesConfig
from chatgate.inbound.queue.controller import InboundQueueController
from chatgate.inbound.settings import get_settings
from tests.helpers import BatchRecorder


@pytest.fixture
def recorder() -> BatchRecorder:
    return BatchRecorder()


@pytest.fixture
async def make_controller(recorder: BatchRecorder) -> AsyncIterator[Callable[..., InboundQueueController]]:
    """Factory for controllers wired to ``recorder``; closed after the test."""
    created: list[InboundQueueController] = []

    def _make(config: MessagesConfig | None = None, **kwargs: Any) -> InboundQueueController:
        controller = InboundQueueController(recorder, config=config, **kwargs)
        created.append(controller)
        return controller

    yield _make

    recorder.release.set()
    for controller in created:
        await controller.aclose()


@pytest.fixture
def hooks() -> HookRegistry:
    return HookRegistry()


@pytest.fixture(autouse=True)
def _isolate_process_state() -> Iterator[None]:
    """Reset the default hook registry and cached settings around each test."""
    clear_hooks()
    get_settings.cache_clear()
    yield
    clear_hooks()
    get_settings.cache_clear()
