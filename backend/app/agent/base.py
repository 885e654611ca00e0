from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel

from app.agent.llm_client import LLMClient, LLMUsage
from app.core.config import settings

InType = TypeVar("InType", bound=BaseModel)
OutType = TypeVar("OutType", bound=BaseModel)


class BaseAgent(ABC, Generic[InType, OutType]):
    """Abstract base class for the report generation agents."""

    def __init__(self, model_name: str | None = None):
        model_to_use = model_name or settings.MODEL_DEFAULT
        self.llm = LLMClient(model_name=model_to_use)

    @abstractmethod
    async def run(self, input_data: InType) -> OutType:
        """Run the agent on the given input to produce the output artifact."""
        pass

    @property
    def usage(self) -> LLMUsage:
        return self.llm.last_usage
