"""Shared fixtures: a small 4/4 score and its working copy."""

from __future__ import annotations

import pytest

from mnote.commands.history import CommandHistory
from mnote.model.mutable import MutableScore
from mnote.model.score import Score


@pytest.fixture
def score() -> Score:
    """Four empty 4/4 measures at 120 bpm with one treble part."""
    return Score.create(title="Test Score", measure_count=4)


@pytest.fixture
def working(score: Score) -> MutableScore:
    return MutableScore(score)


@pytest.fixture
def history() -> CommandHistory:
    return CommandHistory()


@pytest.fixture
def first_measure(working: MutableScore) -> str:
    return working.measure_ids[0]
