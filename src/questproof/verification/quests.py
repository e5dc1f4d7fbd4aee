"""Read-only view of the quest service's catalogue."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from questproof.db.models import Quest


@dataclass(frozen=True)
class QuestRef:
    quest_id: int
    world_id: int
    proof_required: bool = True
    title: str = ""


class QuestCatalog(ABC):
    @abstractmethod
    async def get_quest(self, quest_id: int) -> QuestRef | None: ...


class StaticQuestCatalog(QuestCatalog):
    def __init__(self, quests: Iterable[QuestRef] = ()) -> None:
        self._quests = {q.quest_id: q for q in quests}

    def add(self, quest: QuestRef) -> None:
        self._quests[quest.quest_id] = quest

    async def get_quest(self, quest_id: int) -> QuestRef | None:
        return self._quests.get(quest_id)


class SqlQuestCatalog(QuestCatalog):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_quest(self, quest_id: int) -> QuestRef | None:
        async with self._session_factory() as session:
            result = await session.execute(select(Quest).where(Quest.quest_id == quest_id))
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return QuestRef(
            quest_id=row.quest_id,
            world_id=row.world_id,
            proof_required=row.proof_required,
            title=row.title,
        )
