"""Tests for the YAML job definition loader."""

from pathlib import Path

import pytest
import yaml

from stepline_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_component,
    parse_definition_set,
    parse_fault_policy,
    parse_job,
    parse_step,
    parse_transition,
)
from stepline_config.schema import ComponentDef, FaultPolicyDef

SCRIPTS = Path(__file__).resolve().parents[2] / "scripts"


def _step_data(**overrides):
    data = {
        "name": "load",
        "reader": {"type": "csv", "options": {"path": "in.csv"}},
        "writer": "list",
    }
    data.update(overrides)
    return data


class TestLoadYamlFile:
    def test_sample_definition(self):
        data = load_yaml_file(SCRIPTS / "people_job.yaml")
        assert data["jobs"][0]["name"] == "importUserJob"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "absent.yaml")

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_top_level_list_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("jobs: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)


class TestParseComponent:
    def test_bare_type_name(self):
        assert parse_component("list", "w") == ComponentDef(type="list")

    def test_type_and_options(self):
        component = parse_component({"type": "csv", "options": {"path": "x"}}, "r")
        assert component.type == "csv"
        assert component.options == {"path": "x"}

    def test_missing_type(self):
        with pytest.raises(KeyError):
            parse_component({"options": {}}, "r")

    def test_options_must_be_mapping(self):
        with pytest.raises(ValueError, match="options"):
            parse_component({"type": "csv", "options": ["x"]}, "r")


class TestParseFaultPolicy:
    def test_missing_section(self):
        assert parse_fault_policy(None) == FaultPolicyDef()

    def test_single_name_and_list(self):
        policy = parse_fault_policy(
            {"skippable": "TransformError", "retryable": ["TimeoutError"], "retry_limit": 3}
        )
        assert policy.skippable == ("TransformError",)
        assert policy.retryable == ("TimeoutError",)
        assert policy.retry_limit == 3
        assert policy.skip_limit == 0

    @pytest.mark.parametrize("value", ["5", 2.5, True])
    def test_limit_must_be_integer(self, value):
        with pytest.raises(ValueError, match="skip_limit"):
            parse_fault_policy({"skip_limit": value})


class TestParseStep:
    def test_defaults(self):
        step = parse_step(_step_data())
        assert step.chunk_size == 10
        assert step.processor is None
        assert step.transitions == ()

    def test_transitions(self):
        step = parse_step(_step_data(next=[{"on": "failed", "end": "stopped"}, {"on": "*", "to": "b"}]))
        assert [(t.on, t.to, t.end) for t in step.transitions] == [
            ("failed", None, "stopped"),
            ("*", "b", None),
        ]

    def test_missing_writer(self):
        data = _step_data()
        del data["writer"]
        with pytest.raises(KeyError):
            parse_step(data)

    def test_transition_requires_on(self):
        with pytest.raises(KeyError):
            parse_transition({"to": "b"})


class TestParseJob:
    def test_setup_sql_string(self):
        job = parse_job({"name": "j", "steps": [_step_data()], "setup_sql": "CREATE TABLE t (x INT)"})
        assert job.setup_sql == ("CREATE TABLE t (x INT)",)
        assert job.restartable is True

    def test_listeners(self):
        job = parse_job({"name": "j", "steps": [_step_data()], "listeners": ["logging"]})
        assert job.listeners == (ComponentDef(type="logging"),)

    def test_missing_steps(self):
        with pytest.raises(KeyError):
            parse_job({"name": "j"})


class TestDefinitionSet:
    def test_parse_sample(self):
        data = load_yaml_file(SCRIPTS / "people_job.yaml")
        definitions = parse_definition_set(data, source_path="people_job.yaml")

        job = definitions.get("importUserJob")
        assert [s.name for s in job.steps] == ["stepToUppercase", "step2"]
        assert job.steps[0].reader.options["names"] == ["first_name", "last_name"]
        assert job.steps[0].transitions[0].to == "step2"
        assert len(job.setup_sql) == 1
        assert definitions.job_names == ("importUserJob",)
        assert definitions.checksum == compute_checksum(data)

    def test_unknown_job(self):
        definitions = parse_definition_set({"jobs": [{"name": "a", "steps": [_step_data()]}]})
        with pytest.raises(KeyError, match="Available"):
            definitions.get("b")


class TestChecksum:
    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
