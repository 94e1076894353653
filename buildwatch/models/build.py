"""Build index and manifest records as served by the builds API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ExperimentTreatment(_ApiModel):
    id: int
    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)


class Experiment(_ApiModel):
    id: str
    kind: str = ""
    label: str = ""
    default_config: dict[str, Any] = Field(default_factory=dict)
    treatments: list[ExperimentTreatment] = Field(default_factory=list)


class MinimalBuild(_ApiModel):
    """One entry of the paginated build index."""
    build_number: str
    build_id: str = ""
    created_at: datetime = Field(alias="dateCreated")
    build_hash: str


class BuildManifest(MinimalBuild):
    """Full descriptive record of a single build."""
    path: str = ""
    global_envs: dict[str, Any] = Field(default_factory=dict)
    stylesheet: str = ""
    root_scripts: list[str] = Field(default_factory=list)
    webpack_modules: list[str] = Field(default_factory=list)
    experiments: list[Experiment] = Field(default_factory=list)
    csp: str = ""


class BuildIndexPage(BaseModel):
    last_page: int = 1
    data: list[MinimalBuild] = Field(default_factory=list)
