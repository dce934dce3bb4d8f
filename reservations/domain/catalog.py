"""Static catalog of bookable resource types and their instances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from reservations.domain.errors import UnknownResourceError, UnknownResourceTypeError
from reservations.domain.models import ResourceType


ATTRIBUTE_KINDS = ("text", "boolean", "choice", "multi_choice")


@dataclass(frozen=True)
class AttributeField:
    """Advisory description of one type-specific form field."""

    name: str
    label: str
    kind: str = "text"
    choices: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "label": self.label,
            "kind": self.kind,
            "choices": list(self.choices),
        }


@dataclass(frozen=True)
class ResourceDefinition:
    resource_type: ResourceType
    display_name: str
    instances: tuple[str, ...]
    attributes: tuple[AttributeField, ...]

    @property
    def is_single_instance(self) -> bool:
        return len(self.instances) == 1

    def to_dict(self) -> dict[str, object]:
        return {
            "resource_type": self.resource_type.value,
            "display_name": self.display_name,
            "instances": list(self.instances),
            "attributes": [field.to_dict() for field in self.attributes],
        }


_SUBJECT = AttributeField(name="subject", label="Subject")


def _single(resource_type: ResourceType, display_name: str, *attributes: AttributeField) -> ResourceDefinition:
    # The type tag doubles as the id of its only instance.
    return ResourceDefinition(
        resource_type=resource_type,
        display_name=display_name,
        instances=(resource_type.value,),
        attributes=(_SUBJECT, *attributes),
    )


DEFAULT_DEFINITIONS: tuple[ResourceDefinition, ...] = (
    ResourceDefinition(
        resource_type=ResourceType.STATION_POOL,
        display_name="Computer Lab Stations",
        instances=("Station 1", "Station 2", "Station 3", "Station 4"),
        attributes=(_SUBJECT,),
    ),
    _single(
        ResourceType.SCIENCE_LAB,
        "Science Lab",
        AttributeField(name="experiment_name", label="Experiment"),
        AttributeField(name="needs_technician", label="Needs lab technician", kind="boolean"),
    ),
    _single(
        ResourceType.MAKER_LAB,
        "Maker Lab",
        AttributeField(name="project_name", label="Project"),
        AttributeField(
            name="equipment_used",
            label="Equipment",
            kind="multi_choice",
            choices=(
                "3D Printer",
                "Laser Cutter",
                "Robotics Kits",
                "Electronics Bench",
                "Hand Tools",
            ),
        ),
    ),
    _single(
        ResourceType.KITCHEN,
        "Pedagogical Kitchen",
        AttributeField(name="project_name", label="Project"),
        AttributeField(name="ingredients_requested", label="Ingredients requested"),
    ),
    _single(
        ResourceType.LIBRARY_ROOM,
        "Library Room",
        AttributeField(
            name="activity_type",
            label="Activity",
            kind="choice",
            choices=(
                "Free Reading",
                "Guided Research",
                "Storytelling",
                "Exhibition",
                "Other",
            ),
        ),
        AttributeField(name="needs_media_projector", label="Needs projector", kind="boolean"),
    ),
    _single(
        ResourceType.AUDITORIUM,
        "Auditorium",
        AttributeField(name="event_name", label="Event"),
        AttributeField(
            name="event_type",
            label="Event type",
            kind="choice",
            choices=("Lecture", "Presentation", "Cinema", "Rehearsal", "Meeting", "Other"),
        ),
        AttributeField(name="needs_sound", label="Needs sound system", kind="boolean"),
        AttributeField(name="needs_projector", label="Needs projector", kind="boolean"),
        AttributeField(name="needs_air_conditioning", label="Needs air conditioning", kind="boolean"),
    ),
)


class ResourceCatalog:
    """Read-only lookup of which (type, instance) pairs exist."""

    def __init__(self, definitions: Optional[Iterable[ResourceDefinition]] = None) -> None:
        resolved = tuple(definitions) if definitions is not None else DEFAULT_DEFINITIONS
        self._definitions: dict[ResourceType, ResourceDefinition] = {}
        for definition in resolved:
            if not definition.instances:
                raise ValueError(f"{definition.resource_type.value} must declare at least one instance")
            if len(set(definition.instances)) != len(definition.instances):
                raise ValueError(f"{definition.resource_type.value} has duplicate instance ids")
            for attribute in definition.attributes:
                if attribute.kind not in ATTRIBUTE_KINDS:
                    raise ValueError(f"Unsupported attribute kind: {attribute.kind}")
            self._definitions[definition.resource_type] = definition

    @staticmethod
    def parse_type(resource_type: Union[str, ResourceType]) -> ResourceType:
        if isinstance(resource_type, ResourceType):
            return resource_type
        try:
            return ResourceType(str(resource_type).strip().upper())
        except ValueError as exc:
            raise UnknownResourceTypeError(resource_type) from exc

    def definition(self, resource_type: Union[str, ResourceType]) -> ResourceDefinition:
        parsed = self.parse_type(resource_type)
        definition = self._definitions.get(parsed)
        if definition is None:
            raise UnknownResourceTypeError(resource_type)
        return definition

    def definitions(self) -> tuple[ResourceDefinition, ...]:
        return tuple(self._definitions.values())

    def list_instances(self, resource_type: Union[str, ResourceType]) -> tuple[str, ...]:
        return self.definition(resource_type).instances

    def describe_attributes(self, resource_type: Union[str, ResourceType]) -> tuple[AttributeField, ...]:
        return self.definition(resource_type).attributes

    def resolve_instance(
        self,
        resource_type: Union[str, ResourceType],
        resource_instance_id: Optional[str],
    ) -> str:
        """Return the concrete instance id, defaulting single-instance types."""
        definition = self.definition(resource_type)
        if resource_instance_id is None or not resource_instance_id.strip():
            if definition.is_single_instance:
                return definition.instances[0]
            raise UnknownResourceError(definition.resource_type.value, resource_instance_id)
        if resource_instance_id not in definition.instances:
            raise UnknownResourceError(definition.resource_type.value, resource_instance_id)
        return resource_instance_id
