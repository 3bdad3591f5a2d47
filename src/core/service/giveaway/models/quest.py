from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from src.core.exceptions.base import UnknownQuestError


class QuestDefinition(BaseModel):
    """One catalog-defined task"""
    id: str = Field(..., description="Stable quest identifier")
    title: str = Field(default="", description="Human readable title")
    mandatory: bool = Field(default=True, description="Required for eligibility")
    point_value: int = Field(default=0, ge=0, description="Points credited on first completion")
    type: str = Field(default="generic", description="Quest kind, e.g. social_follow")


class QuestCatalog:
    """Ordered, read-only view over the configured quest definitions"""

    def __init__(self, definitions: Iterable[QuestDefinition]):
        self.definitions: List[QuestDefinition] = list(definitions)
        self._by_id: Dict[str, QuestDefinition] = {d.id: d for d in self.definitions}
        if len(self._by_id) != len(self.definitions):
            raise ValueError("Quest catalog contains duplicate ids")

    @classmethod
    def from_settings(cls, entries: Iterable[BaseModel]) -> "QuestCatalog":
        return cls(QuestDefinition(**entry.model_dump()) for entry in entries)

    @property
    def quest_ids(self) -> List[str]:
        return [d.id for d in self.definitions]

    @property
    def mandatory_ids(self) -> List[str]:
        return [d.id for d in self.definitions if d.mandatory]

    def get(self, quest_id: str) -> Optional[QuestDefinition]:
        return self._by_id.get(quest_id)

    def require(self, quest_id: str) -> QuestDefinition:
        definition = self._by_id.get(quest_id)
        if definition is None:
            raise UnknownQuestError(quest_id)
        return definition

    def point_value(self, quest_id: str) -> int:
        definition = self._by_id.get(quest_id)
        return definition.point_value if definition else 0

    def __contains__(self, quest_id: str) -> bool:
        return quest_id in self._by_id

    def __len__(self) -> int:
        return len(self.definitions)
