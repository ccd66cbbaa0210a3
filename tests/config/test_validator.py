"""Tests for job definition validation."""

from stepline_config.schema import (
    ComponentDef,
    FaultPolicyDef,
    JobDef,
    JobDefinitionSet,
    StepDef,
    TransitionDef,
)
from stepline_config.validator import validate_definition_set, validate_job_def


def _step(name="load", **kwargs) -> StepDef:
    return StepDef(
        name=name,
        reader=ComponentDef(type="iterable"),
        writer=ComponentDef(type="list"),
        **kwargs,
    )


def _job(*steps, name="j") -> JobDef:
    return JobDef(name=name, steps=steps or (_step(),))


class TestValidateJobDef:
    def test_valid(self):
        assert validate_job_def(_job(_step("a"), _step("b"))) == ()

    def test_no_steps(self):
        errors = validate_job_def(JobDef(name="j", steps=()))
        assert any("declares no steps" in e for e in errors)

    def test_empty_name(self):
        errors = validate_job_def(_job(name=""))
        assert "Job name must not be empty" in errors

    def test_duplicate_steps(self):
        errors = validate_job_def(_job(_step("a"), _step("a")))
        assert any("duplicate step name 'a'" in e for e in errors)

    def test_chunk_size(self):
        errors = validate_job_def(_job(_step(chunk_size=0)))
        assert any("chunk_size must be >= 1" in e for e in errors)

    def test_negative_limits(self):
        errors = validate_job_def(
            _job(_step(fault_policy=FaultPolicyDef(skip_limit=-1, retry_limit=-2)))
        )
        assert len(errors) == 2

    def test_transition_errors(self):
        step = _step(
            "a",
            transitions=(
                TransitionDef(on="exploded", to="a"),
                TransitionDef(on="completed", to="missing"),
                TransitionDef(on="failed", to="a", end="failed"),
                TransitionDef(on="stopped", end="started"),
            ),
        )
        errors = validate_job_def(_job(step))
        assert any("unknown status 'exploded'" in e for e in errors)
        assert any("unknown step 'missing'" in e for e in errors)
        assert any("both 'to' and 'end'" in e for e in errors)
        assert any("'started' is not terminal" in e for e in errors)

    def test_transition_to_later_step(self):
        step = _step("a", transitions=(TransitionDef(on="COMPLETED", to="c"),))
        assert validate_job_def(_job(step, _step("b"), _step("c"))) == ()

    def test_wildcard_transition(self):
        step = _step("a", transitions=(TransitionDef(on="*", end="completed"),))
        assert validate_job_def(_job(step)) == ()


class TestValidateDefinitionSet:
    def test_duplicate_jobs(self):
        result = validate_definition_set(JobDefinitionSet(jobs=(_job(), _job())))
        assert not result.is_valid
        assert any("Duplicate job" in e for e in result.errors)

    def test_warnings_do_not_invalidate(self):
        step = _step(fault_policy=FaultPolicyDef(skippable=("ValueError",), retryable=("OSError",)))
        result = validate_definition_set(JobDefinitionSet(jobs=(_job(step),)))
        assert result.is_valid
        assert len(result.warnings) == 2
