import random

from planner import TIME_SLOTS, generate_blocks
from schemas import GoalRef


def test_defaults_without_goals():
    blocks = generate_blocks([], random.Random(1))
    assert [(b.title, b.start_time, b.end_time) for b in blocks] == [
        ("Morning Routine", "07:00", "08:00"),
        ("Work Focus Time", "09:00", "12:00"),
        ("Lunch Break", "12:00", "13:00"),
    ]


def test_goal_blocks_use_category_slots():
    goals = [GoalRef(id="g1", category="physical"), GoalRef(id="g2", category="financial"),
             GoalRef(id="g3", category="unknown")]
    blocks = generate_blocks(goals, random.Random(7))
    slot_types = {start: kind for start, _, kind in TIME_SLOTS}

    physical = [b for b in blocks if b.goal_id == "g1"]
    financial = [b for b in blocks if b.goal_id == "g2"]
    assert len(physical) == 1 and slot_types[physical[0].start_time] in ("morning", "evening")
    assert len(financial) == 1 and slot_types[financial[0].start_time] in ("work", "evening")
    assert not [b for b in blocks if b.goal_id == "g3"]


def test_blocks_are_sorted_with_unique_ids():
    goals = [GoalRef(category=c) for c in ("mental", "social", "personal", "physical")]
    blocks = generate_blocks(goals, random.Random(3))
    starts = [b.start_time for b in blocks]
    assert starts == sorted(starts)
    assert len({b.id for b in blocks}) == len(blocks)
