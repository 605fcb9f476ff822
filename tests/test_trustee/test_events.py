"""Tests for the event emitter."""
from __future__ import annotations

from trustee.events import CheckpointSaved, EventEmitter, IterationCompleted


def test_subscribe_by_type():
    emitter = EventEmitter()
    seen = []
    emitter.subscribe(IterationCompleted, seen.append)
    emitter.emit(IterationCompleted(iteration=1))
    emitter.emit(CheckpointSaved(session_id="s", sequence=1, path="p"))
    assert seen == [IterationCompleted(iteration=1)]


def test_global_listeners_run_first_in_order():
    emitter = EventEmitter()
    order = []
    emitter.subscribe(IterationCompleted, lambda e: order.append("typed"))
    emitter.on_all(lambda e: order.append("all-1"))
    emitter.on_all(lambda e: order.append("all-2"))
    emitter.emit(IterationCompleted(iteration=2))
    assert order == ["all-1", "all-2", "typed"]


def test_emit_without_listeners():
    EventEmitter().emit(IterationCompleted(iteration=0))
