import json
from pathlib import Path

import pytest

from twinbridge.core import CatalogError, NoMappingFound
from twinbridge.mapping import MessageMapperCatalog, load_mapper_catalog
from twinbridge.mapping.catalog import SERIALIZATION_JSON_STRING


def test_load_mapper_catalog_preserves_rule_order(handlers_catalog):
    sub_types = list(handlers_catalog.telemetry_mappings()[1])

    assert sub_types[:3] == ["container.created", "container.removed", "simple.message"]
    assert sub_types[-1] == "twin.state"
    assert handlers_catalog.source is not None
    assert handlers_catalog.source.name == "handlers-mapper-config.json"


def test_telemetry_rule_fields(convert_catalog):
    mapping = convert_catalog.telemetry_mapping(1, "field.mapping")

    assert mapping.mapping_properties.topic == "messages/field.mapping"
    assert mapping.mapping_properties.path == ""
    assert mapping.value_template == {"string.key": "$string_key"}
    assert mapping.field_mappings["$string_key"]["default"] == "default_mapped_field_value"
    assert mapping.proto_descriptor == ""

    json_string = convert_catalog.telemetry_mapping(1, "serialize.json.string")
    assert json_string.serialization == SERIALIZATION_JSON_STRING
    assert json_string.value_template is None


def test_command_rule_fields(handlers_catalog):
    mapping = handlers_catalog.command_mapping("container.manifest.retained")
    properties = mapping.mapping_properties

    assert properties.thing == "edge:containers"
    assert properties.action == "apply"
    assert properties.value_key == "manifest"
    assert properties.retain_correlation_id is True
    assert mapping.proto_descriptor == ""
    assert "simple.message" in handlers_catalog.command_names


def test_unknown_command_raises_no_mapping(handlers_catalog):
    with pytest.raises(NoMappingFound) as excinfo:
        handlers_catalog.command_mapping("container.non-existing")

    assert excinfo.value.command_name == "container.non-existing"
    assert "not supported" in str(excinfo.value)


def test_unknown_telemetry_type_raises_no_mapping(handlers_catalog):
    with pytest.raises(NoMappingFound):
        handlers_catalog.telemetry_mapping(2, "container.created")


def test_descriptor_sets_resolve_relative_to_catalog(tmp_path: Path):
    config_path = tmp_path / "mapper.json"
    config_path.write_text(
        json.dumps({"descriptorSets": ["protos/messages.desc"], "telemetry": {}}),
        encoding="utf-8",
    )

    catalog = load_mapper_catalog(config_path)

    assert catalog.descriptor_sets == (tmp_path / "protos" / "messages.desc",)
    assert catalog.command_names == ()


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"telemetry": {"one": {}}},
        {"telemetry": {"1": []}},
        {"telemetry": {"1": {"x": {"valueMapping": "not-an-object"}}}},
        {"telemetry": {"1": {"x": {"serialization": "xml"}}}},
        {"commands": {"x": {"mappingProperties": {"retainCorrelationId": "yes"}}}},
        {"commands": {"x": {"mappingProperties": {"thing": 7}}}},
        {"descriptorSets": "protos/messages.desc"},
    ],
)
def test_invalid_documents_raise_catalog_error(document):
    with pytest.raises(CatalogError):
        MessageMapperCatalog.from_dict(document)


def test_load_mapper_catalog_reports_unreadable_files(tmp_path: Path):
    with pytest.raises(CatalogError):
        load_mapper_catalog(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError):
        load_mapper_catalog(broken)
