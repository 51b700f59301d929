# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Knowledge graph data models.

Python attributes are snake_case; the wire format (MCP tool arguments and
results) uses the camelCase aliases. Models accept either spelling on input
and should be dumped with ``by_alias=True`` for callers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .validators import StringList


class GraphModel(BaseModel):
    """Base for graph models: alias-aware, accepts field names too."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump using the camelCase wire names."""
        return self.model_dump(by_alias=True)


class Entity(GraphModel):
    """A uniquely named node with a type label and observation strings."""

    name: str = Field(description="The name of the entity")
    entity_type: str = Field(alias="entityType", description="The type of the entity")
    observations: StringList = Field(
        default_factory=list,
        description="An array of observation contents associated with the entity",
    )


class Relation(GraphModel):
    """A typed directed edge, identified by (from, to, relationType)."""

    from_entity: str = Field(alias="from", description="The name of the entity where the relation starts")
    to_entity: str = Field(alias="to", description="The name of the entity where the relation ends")
    relation_type: str = Field(alias="relationType", description="The type of the relation")

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.from_entity, self.to_entity, self.relation_type)


class KnowledgeGraph(GraphModel):
    entities: list[Entity] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)

    @property
    def entity_names(self) -> list[str]:
        return [e.name for e in self.entities]


class ObservationAddition(GraphModel):
    """Observations to attach to one existing entity."""

    entity_name: str = Field(alias="entityName", description="The name of the entity to add the observations to")
    contents: StringList = Field(description="An array of observation contents to add")


class ObservationDeletion(GraphModel):
    """Observations to remove from one entity."""

    entity_name: str = Field(alias="entityName", description="The name of the entity containing the observations")
    observations: StringList = Field(description="An array of observations to delete")


class ObservationResult(GraphModel):
    """Contents newly added to an entity by ``add_observations``."""

    entity_name: str = Field(alias="entityName")
    added_observations: list[str] = Field(default_factory=list, alias="addedObservations")
