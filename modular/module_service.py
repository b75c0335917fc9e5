"""
Deployed module discovery.

The orchestrator asks a ModuleService for the modules present in this
deployment together with the version each one was deployed at.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modular.version import VersionNumber, as_version


class ModuleDetails(BaseModel):
    """A deployed module and its version."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(min_length=1, description="Unique module identifier.")
    version: VersionNumber = Field(description="Deployed module version.")
    title: str = Field(default="", description="Display title.")
    description: str = Field(default="", description="Module description.")

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value):
        try:
            return as_version(value)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @field_validator("version")
    @classmethod
    def _reject_unbounded(cls, value: VersionNumber) -> VersionNumber:
        if value.is_unbounded:
            raise ValueError("A deployed module needs a concrete version")
        return value

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


class ModuleService(ABC):
    """Supplies the modules deployed in this application."""

    @abstractmethod
    def get_all_modules(self) -> List[ModuleDetails]:
        pass


class StaticModuleService(ModuleService):
    """Module service over a fixed list, e.g. read from a manifest."""

    def __init__(self, modules: Iterable[ModuleDetails]):
        self._modules = list(modules)
        seen = set()
        for module in self._modules:
            if module.id in seen:
                raise ValueError(f"Module '{module.id}' is listed twice")
            seen.add(module.id)

    def get_all_modules(self) -> List[ModuleDetails]:
        return list(self._modules)
