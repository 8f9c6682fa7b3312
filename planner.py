"""
Heuristic day plan built from a user's goal categories.

Each goal gets one free slot of a type suited to its category, filled with an
activity from that category. Default routine blocks fill common gaps.
"""
import random
from typing import Dict, List, Optional, Sequence

from schemas import GoalRef, ScheduleBlock

TIME_SLOTS = [
    ("07:00", "08:00", "morning"),
    ("08:00", "09:00", "morning"),
    ("09:00", "10:00", "work"),
    ("10:00", "11:00", "work"),
    ("11:00", "12:00", "work"),
    ("12:00", "13:00", "lunch"),
    ("13:00", "14:00", "work"),
    ("14:00", "15:00", "work"),
    ("15:00", "16:00", "work"),
    ("16:00", "17:00", "work"),
    ("17:00", "18:00", "evening"),
    ("18:00", "19:00", "evening"),
    ("19:00", "20:00", "evening"),
    ("20:00", "21:00", "evening"),
    ("21:00", "22:00", "night"),
]

CATEGORY_PLAN: Dict[str, Dict[str, List[str]]] = {
    "physical": {
        "slots": ["morning", "evening"],
        "activities": ["Morning Workout", "Evening Walk", "Yoga Session", "Gym Training", "Outdoor Activity"],
    },
    "mental": {
        "slots": ["morning", "lunch", "night"],
        "activities": ["Morning Meditation", "Mindfulness Break", "Journal Writing", "Reading Time",
                       "Relaxation Exercise"],
    },
    "financial": {
        "slots": ["work", "evening"],
        "activities": ["Budget Review", "Investment Research", "Expense Tracking", "Financial Planning",
                       "Side Project Work"],
    },
    "social": {
        "slots": ["lunch", "evening", "night"],
        "activities": ["Team Lunch", "Family Time", "Friend Catch-up", "Community Event",
                       "Phone Call with Loved Ones"],
    },
    "personal": {
        "slots": ["morning", "evening", "night"],
        "activities": ["Personal Development", "Hobby Time", "Creative Work", "Self-Care", "Learning Session"],
    },
}


def generate_blocks(goals: Sequence[GoalRef], rng: Optional[random.Random] = None) -> List[ScheduleBlock]:
    rng = rng or random.Random()
    blocks: List[ScheduleBlock] = []
    used = set()

    def add(title, category, start, end, goal_id=None):
        blocks.append(ScheduleBlock(
            id=f"block-{len(blocks)}",
            title=title,
            category=category,
            start_time=start,
            end_time=end,
            goal_id=goal_id,
        ))

    for goal in goals:
        plan = CATEGORY_PLAN.get(goal.category)
        if plan is None:
            continue
        free = [s for s in TIME_SLOTS if s[2] in plan["slots"] and s[0] not in used]
        if not free:
            continue
        start, end, _ = rng.choice(free)
        add(rng.choice(plan["activities"]), goal.category, start, end, goal.id)
        used.add(start)

    if "07:00" not in used:
        add("Morning Routine", "mental", "07:00", "08:00")
    if "12:00" not in used:
        add("Lunch Break", "social", "12:00", "13:00")

    work = [s for s in TIME_SLOTS if s[2] == "work" and s[0] not in used]
    if len(work) >= 3:
        add("Work Focus Time", "financial", work[0][0], work[2][1])

    return sorted(blocks, key=lambda b: b.start_time)
