import threading

import pytest

from twinbridge.mapping import IncrementorStore, TemplateInterpreter
from twinbridge.mapping.catalog import MappingProperties, TelemetryMapping
from twinbridge.mapping.interpreter import resolve_reference


def _mapping(template, field_mappings=None) -> TelemetryMapping:
    return TelemetryMapping(
        mapping_properties=MappingProperties(topic="messages/test"),
        value_template=template,
        field_mappings=field_mappings or {},
    )


@pytest.fixture
def interpreter() -> TemplateInterpreter:
    return TemplateInterpreter(clock=lambda: 1700000000000)


def test_reference_resolves_nested_value(interpreter):
    result = interpreter.interpret(_mapping({"value": "$a.b"}), {"a": {"b": 7}})

    assert result == {"value": 7}


def test_missing_reference_removes_key(interpreter):
    mapping = _mapping({"value": "$a.b", "kept": "literal"})

    assert interpreter.interpret(mapping, {"a": {}}) == {"kept": "literal"}
    assert interpreter.interpret(mapping, {"a": "scalar"}) == {"kept": "literal"}


def test_null_reference_removes_key(interpreter):
    assert interpreter.interpret(_mapping({"value": "$a"}), {"a": None}) == {}


def test_falsy_values_are_kept(interpreter):
    mapping = _mapping({"flag": "$flag", "count": "$count", "text": "$text"})

    result = interpreter.interpret(mapping, {"flag": False, "count": 0, "text": ""})

    assert result == {"flag": False, "count": 0, "text": ""}


def test_reference_resolving_to_object_is_copied_verbatim(interpreter):
    source = {"state": {"status": "RUNNING", "pid": 42}}

    result = interpreter.interpret(_mapping({"state": "$state"}), source)

    assert result == {"state": {"status": "RUNNING", "pid": 42}}


def test_timestamp_function(interpreter):
    result = interpreter.interpret(_mapping({"meta": {"ts": "timestamp()"}}), {})

    assert result == {"meta": {"ts": 1700000000000}}


def test_incrementors_count_per_key(interpreter):
    mapping = _mapping({"a": "++first", "b": "++second"})

    values = [interpreter.interpret(mapping, {}) for _ in range(3)]

    assert [value["a"] for value in values] == [1, 2, 3]
    assert [value["b"] for value in values] == [1, 2, 3]
    assert interpreter.incrementors.get("first") == 3
    assert interpreter.incrementors.get("unused") == 0


def test_incrementor_store_is_shared_between_interpreters():
    store = IncrementorStore()
    first = TemplateInterpreter(store)
    second = TemplateInterpreter(store)
    mapping = _mapping({"counter": "++shared"})

    assert first.interpret(mapping, {}) == {"counter": 1}
    assert second.interpret(mapping, {}) == {"counter": 2}


def test_incrementor_store_is_thread_safe():
    store = IncrementorStore()

    def _work() -> None:
        for _ in range(500):
            store.increment("counter")

    threads = [threading.Thread(target=_work) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("counter") == 4000


def test_field_mapping_applied_by_reference(interpreter):
    mapping = _mapping(
        {"status": "$state.status"},
        {"$state.status": {"RUNNING": "up", "default": "other"}},
    )

    assert interpreter.interpret(mapping, {"state": {"status": "RUNNING"}}) == {"status": "up"}
    assert interpreter.interpret(mapping, {"state": {"status": "EXITED"}}) == {"status": "other"}


def test_ignore_value_drops_whole_message(interpreter):
    mapping = _mapping(
        {"counter": "++dropped", "nested": {"status": "$status"}},
        {"$status": {"IGNORED": "_"}},
    )

    assert interpreter.interpret(mapping, {"status": "IGNORED"}) is None
    assert interpreter.interpret(mapping, {"status": "KEPT"}) == {
        "counter": 2,
        "nested": {"status": "KEPT"},
    }


def test_interpretation_is_deterministic_and_keeps_template(interpreter):
    template = {
        "nested": {"value": "$a.b", "missing": "$x"},
        "list": ["$a.b"],
        "literal": 1.5,
    }
    mapping = _mapping(template)
    source = {"a": {"b": "resolved"}}

    first = interpreter.interpret(mapping, source)
    second = interpreter.interpret(mapping, source)

    assert first == second == {
        "nested": {"value": "resolved"},
        "list": ["$a.b"],
        "literal": 1.5,
    }
    assert template == {
        "nested": {"value": "$a.b", "missing": "$x"},
        "list": ["$a.b"],
        "literal": 1.5,
    }
    assert first["nested"] is not second["nested"]


def test_source_is_not_modified(interpreter):
    source = {"state": {"status": "RUNNING"}}

    result = interpreter.interpret(_mapping({"state": "$state"}), source)
    result["state"]["status"] = "changed"

    assert source == {"state": {"status": "RUNNING"}}


def test_resolve_reference():
    source = {"a": {"b": {"c": [1, 2]}}}

    assert resolve_reference("a.b.c", source) == [1, 2]
    assert resolve_reference("a.x", source) is None
    assert resolve_reference("a.b.c.d", source) is None
