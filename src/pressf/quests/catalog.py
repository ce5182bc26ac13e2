"""Daily quest catalog and deterministic per-day selection."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date

QUESTS_PER_DAY = 3


@dataclass(frozen=True)
class QuestSpec:
    quest_type: str
    title: str
    description: str
    target: int
    reward: int


QUEST_CATALOG: tuple[QuestSpec, ...] = (
    QuestSpec("create_letter", "Write a letter", "Create a new letter", 1, 10),
    QuestSpec("check_in", "Tap the skull", "Prove you are still alive", 1, 5),
    QuestSpec("create_duel", "Start a beef", "Challenge someone to a duel", 1, 20),
    QuestSpec("win_duel", "Win a beef", "Win a duel", 1, 30),
    QuestSpec("invite_friend", "Invite a friend", "Share your link with a friend", 1, 50),
    QuestSpec("update_profile", "Update your profile", "Change something in your profile", 1, 5),
    QuestSpec("create_squad", "Build a squad", "Gather a team", 1, 15),
)

QUESTS_BY_TYPE: dict[str, QuestSpec] = {q.quest_type: q for q in QUEST_CATALOG}


def _shuffled(user_id: int, quest_date: date) -> list[QuestSpec]:
    rng = random.Random(f"{user_id}:{quest_date.isoformat()}")
    quests = list(QUEST_CATALOG)
    rng.shuffle(quests)
    return quests


def pick_quests(user_id: int, quest_date: date, count: int = QUESTS_PER_DAY) -> list[QuestSpec]:
    """Same (user, date) always yields the same quests, so re-generation is a no-op."""
    return _shuffled(user_id, quest_date)[:count]


def pick_extra_quest(user_id: int, quest_date: date, assigned: set[str]) -> QuestSpec | None:
    """Next quest in the day's order that the user does not have yet."""
    for quest in _shuffled(user_id, quest_date):
        if quest.quest_type not in assigned:
            return quest
    return None
