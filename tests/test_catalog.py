from __future__ import annotations

import pytest

from reservations.domain.catalog import (
    AttributeField,
    ResourceCatalog,
    ResourceDefinition,
)
from reservations.domain.errors import UnknownResourceError, UnknownResourceTypeError
from reservations.domain.models import ResourceType


def test_station_pool_has_four_named_instances():
    catalog = ResourceCatalog()
    assert catalog.list_instances(ResourceType.STATION_POOL) == (
        "Station 1",
        "Station 2",
        "Station 3",
        "Station 4",
    )


@pytest.mark.parametrize(
    "resource_type",
    [
        ResourceType.SCIENCE_LAB,
        ResourceType.MAKER_LAB,
        ResourceType.KITCHEN,
        ResourceType.LIBRARY_ROOM,
        ResourceType.AUDITORIUM,
    ],
)
def test_other_types_have_one_implicit_instance(resource_type):
    catalog = ResourceCatalog()
    assert catalog.list_instances(resource_type) == (resource_type.value,)
    assert catalog.resolve_instance(resource_type, None) == resource_type.value


def test_every_type_is_described():
    catalog = ResourceCatalog()
    described = {definition.resource_type for definition in catalog.definitions()}
    assert described == set(ResourceType)


def test_unknown_type_raises():
    catalog = ResourceCatalog()
    with pytest.raises(UnknownResourceTypeError):
        catalog.list_instances("SWIMMING_POOL")
    with pytest.raises(UnknownResourceTypeError):
        catalog.describe_attributes("SWIMMING_POOL")


def test_type_tags_are_case_insensitive():
    catalog = ResourceCatalog()
    assert catalog.definition("auditorium").resource_type is ResourceType.AUDITORIUM


def test_auditorium_attribute_schema():
    catalog = ResourceCatalog()
    fields = {field.name: field for field in catalog.describe_attributes("AUDITORIUM")}

    assert fields["event_type"].kind == "choice"
    assert "Lecture" in fields["event_type"].choices
    assert fields["needs_sound"].kind == "boolean"
    assert "needs_air_conditioning" in fields


def test_maker_lab_equipment_is_multi_choice():
    catalog = ResourceCatalog()
    fields = {field.name: field for field in catalog.describe_attributes(ResourceType.MAKER_LAB)}
    assert fields["equipment_used"].kind == "multi_choice"
    assert "3D Printer" in fields["equipment_used"].choices


def test_resolve_instance_rejects_foreign_and_missing_ids():
    catalog = ResourceCatalog()
    with pytest.raises(UnknownResourceError):
        catalog.resolve_instance("STATION_POOL", "Station 9")
    with pytest.raises(UnknownResourceError):
        catalog.resolve_instance("STATION_POOL", None)
    with pytest.raises(UnknownResourceError):
        catalog.resolve_instance("KITCHEN", "Station 1")


def test_custom_catalog_rejects_duplicate_instances():
    with pytest.raises(ValueError):
        ResourceCatalog(
            [
                ResourceDefinition(
                    resource_type=ResourceType.STATION_POOL,
                    display_name="Stations",
                    instances=("A", "A"),
                    attributes=(),
                )
            ]
        )


def test_custom_catalog_rejects_unknown_attribute_kind():
    with pytest.raises(ValueError):
        ResourceCatalog(
            [
                ResourceDefinition(
                    resource_type=ResourceType.KITCHEN,
                    display_name="Kitchen",
                    instances=("KITCHEN",),
                    attributes=(AttributeField(name="oven", label="Oven", kind="number"),),
                )
            ]
        )


def test_custom_catalog_without_a_type_reports_it_unknown():
    catalog = ResourceCatalog(
        [
            ResourceDefinition(
                resource_type=ResourceType.KITCHEN,
                display_name="Kitchen",
                instances=("KITCHEN",),
                attributes=(),
            )
        ]
    )
    with pytest.raises(UnknownResourceTypeError):
        catalog.list_instances(ResourceType.AUDITORIUM)
