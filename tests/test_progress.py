"""Tests for resurrector.progress."""

from __future__ import annotations

import asyncio

from resurrector.models import ProgressEvent, Stage, Status
from resurrector.progress import ProgressChannel, ProgressTracker


def test_starting_a_stage_completes_earlier_open_stages() -> None:
    tracker = ProgressTracker()

    tracker.running(Stage.ANALYSIS, "Connecting to repository...")
    tracker.running(Stage.READING, "Reading 2 files...")

    assert tracker.events == [
        ProgressEvent(Stage.ANALYSIS, Status.RUNNING, "Connecting to repository..."),
        ProgressEvent(Stage.ANALYSIS, Status.COMPLETE),
        ProgressEvent(Stage.READING, Status.RUNNING, "Reading 2 files..."),
    ]


def test_finished_stages_are_not_completed_twice() -> None:
    tracker = ProgressTracker()

    tracker.running(Stage.ANALYSIS)
    tracker.complete(Stage.ANALYSIS, "Repository analyzed")
    tracker.running(Stage.GENERATION)

    completions = [event for event in tracker.events if event.status is Status.COMPLETE]
    assert completions == [ProgressEvent(Stage.ANALYSIS, Status.COMPLETE, "Repository analyzed")]


def test_error_stage_leaves_open_stages_alone() -> None:
    tracker = ProgressTracker()

    tracker.running(Stage.GENERATION)
    tracker.error(Stage.ERROR, "boom")

    assert tracker.events[-1] == ProgressEvent(Stage.ERROR, Status.ERROR, "boom")
    assert len(tracker.events) == 2


def test_tracker_forwards_to_sink() -> None:
    seen = []
    tracker = ProgressTracker(seen.append)

    tracker.running(Stage.QUALITY, "Validating content...")

    assert seen == tracker.events


def test_channel_yields_until_closed() -> None:
    async def scenario():
        channel = ProgressChannel()
        channel(ProgressEvent(Stage.ANALYSIS, Status.RUNNING))
        channel(ProgressEvent(Stage.ANALYSIS, Status.COMPLETE))
        channel.close()
        channel(ProgressEvent(Stage.READING, Status.RUNNING))
        return [event async for event in channel]

    events = asyncio.run(scenario())

    assert [event.status for event in events] == [Status.RUNNING, Status.COMPLETE]
