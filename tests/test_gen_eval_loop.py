import asyncio
import json

import pytest

from agents.gen_eval_loop import (
    EVALUATE_TOOL_NAME,
    GENERATE_TOOL_NAME,
    GenerateEvaluateLoop,
    decode_generated_test,
    decode_verdict,
)
from models.testing import AnalyzerResult, TestRunResult
from storage.artifact_store import ArtifactStore
from utils.errors import StageError, StructuredOutputError, TestRunnerError

from conftest import FakeRunner, StructuredGateway

ANALYSIS = AnalyzerResult(
    tech_spec="A small shop with a login form.",
    content_map={"https://shop.test/": "<form id='login'></form>"},
    criteria="Users can log in\n\nUsers can search products\n\nFooter links work",
)

GOOD_TEST = json.dumps(
    {
        "filename": "login.spec.ts",
        "content": "import { test } from '@playwright/test';\ntest('login', async () => {});",
        "dependencies": ["@playwright/test"],
    }
)
REJECT = json.dumps({"passed": False, "feedback": "Selector #login is wrong."})
ACCEPT = json.dumps({"passed": True, "feedback": ""})
FAILED_RUN = TestRunResult(output="1 failed\nError: locator('#login') not found", success=False)


def run_loop(gateway, runner, tmp_path, criterion_index=0, **kwargs):
    store = ArtifactStore(root=str(tmp_path / "work"), reports_dir=str(tmp_path / "reports"))
    max_iterations = kwargs.pop("max_iterations", 3)
    loop = GenerateEvaluateLoop(gateway, runner, store, max_iterations=max_iterations, **kwargs)
    return asyncio.run(loop.run(ANALYSIS, criterion_index)), store


def test_always_rejected_exhausts_after_max_iterations_plus_one(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [REJECT]})
    runner = FakeRunner([FAILED_RUN])

    result, store = run_loop(gateway, runner, tmp_path, max_iterations=3)

    assert result.status == "exhausted"
    assert not result.accepted
    assert result.generations == 4
    assert gateway.count(GENERATE_TOOL_NAME) == 4
    assert gateway.count(EVALUATE_TOOL_NAME) == 4
    assert len(runner.paths) == 4
    assert result.artifact_path == str(store.artifact_path(0))
    assert result.verdict.feedback == "Selector #login is wrong."


def test_accept_on_first_iteration(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [ACCEPT]})
    runner = FakeRunner()

    result, store = run_loop(gateway, runner, tmp_path)

    assert result.accepted
    assert result.iterations == 1
    assert result.generations == 1
    assert runner.paths == [result.artifact_path]
    assert "test('login'" in store.read(0)


def test_zero_iterations_means_a_single_attempt(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [REJECT]})

    result, _ = run_loop(gateway, FakeRunner([FAILED_RUN]), tmp_path, max_iterations=0)

    assert result.status == "exhausted"
    assert result.generations == 1


def test_retry_prompt_carries_feedback_and_history(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [REJECT, ACCEPT]})
    runner = FakeRunner([FAILED_RUN, TestRunResult(output="1 passed", success=True)])

    result, _ = run_loop(gateway, runner, tmp_path)

    assert result.accepted
    assert result.generations == 2
    generator_calls = [r for r in gateway.requests if r["tool"] == GENERATE_TOOL_NAME]
    retry = generator_calls[1]
    assert "FEEDBACK: Selector #login is wrong." in retry["prompt"]
    assert "test('login'" in retry["prompt"]
    roles = [turn.role for turn in retry["conversation"]]
    assert roles == ["user", "assistant", "user"]
    assert retry["conversation"].turns[1].text == GOOD_TEST


def test_generator_context_holds_only_the_selected_criterion(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [ACCEPT]})

    result, store = run_loop(gateway, FakeRunner(), tmp_path, criterion_index=1)

    system = gateway.requests[0]["system"]
    assert "Users can search products" in system
    assert "Users can log in" not in system
    assert result.artifact_path == str(store.artifact_path(1))


def test_acceptance_over_failing_run_is_downgraded(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [ACCEPT]})

    result, _ = run_loop(gateway, FakeRunner([FAILED_RUN]), tmp_path, max_iterations=1)

    assert result.status == "exhausted"
    assert result.generations == 2
    assert "locator('#login') not found" in result.verdict.feedback


def test_acceptance_over_failing_run_allowed_when_configured(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [ACCEPT]})

    result, _ = run_loop(gateway, FakeRunner([FAILED_RUN]), tmp_path, require_passing_run=False)

    assert result.accepted


def test_empty_rejection_feedback_is_filled_from_output(tmp_path):
    empty_reject = json.dumps({"passed": False, "feedback": ""})
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [empty_reject]})

    result, _ = run_loop(gateway, FakeRunner([FAILED_RUN]), tmp_path, max_iterations=0)

    assert result.verdict.feedback
    assert "not found" in result.verdict.feedback


def test_undecodable_generator_output_fails_generate_stage(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: ["this is not json"], EVALUATE_TOOL_NAME: [ACCEPT]})

    with pytest.raises(StageError) as exc_info:
        run_loop(gateway, FakeRunner(), tmp_path)
    assert exc_info.value.stage == "generate"


def test_missing_fields_fail_generate_stage(tmp_path):
    no_content = json.dumps({"filename": "a.spec.ts", "content": "", "dependencies": ["@playwright/test"]})
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [no_content], EVALUATE_TOOL_NAME: [ACCEPT]})
    runner = FakeRunner()

    with pytest.raises(StageError) as exc_info:
        run_loop(gateway, runner, tmp_path)
    assert exc_info.value.stage == "generate"
    assert runner.paths == []


def test_runner_failure_fails_execute_stage(tmp_path):
    class BrokenRunner(FakeRunner):
        async def run(self, test_path=None):
            raise TestRunnerError("pnpm not found")

    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: [ACCEPT]})

    with pytest.raises(StageError) as exc_info:
        run_loop(gateway, BrokenRunner(), tmp_path)
    assert exc_info.value.stage == "execute"


def test_bad_verdict_fails_evaluate_stage(tmp_path):
    gateway = StructuredGateway({GENERATE_TOOL_NAME: [GOOD_TEST], EVALUATE_TOOL_NAME: ['{"feedback": "no verdict"}']})

    with pytest.raises(StageError) as exc_info:
        run_loop(gateway, FakeRunner(), tmp_path)
    assert exc_info.value.stage == "evaluate"


def test_criterion_out_of_range_fails_setup(tmp_path):
    gateway = StructuredGateway({})

    with pytest.raises(StageError) as exc_info:
        run_loop(gateway, FakeRunner(), tmp_path, criterion_index=7)
    assert exc_info.value.stage == "setup"
    assert gateway.requests == []


# ── Decoding ──────────────────────────────────────────────────────────────────


def test_decode_strict():
    decoded = decode_generated_test(GOOD_TEST)
    assert decoded.filename == "login.spec.ts"
    assert decoded.dependencies == ["@playwright/test"]


def test_decode_falls_back_to_stringified_dependencies():
    raw = json.dumps({"filename": "a.spec.ts", "content": "x", "dependencies": '["@playwright/test"]'})
    assert decode_generated_test(raw).dependencies == ["@playwright/test"]


def test_decode_strips_code_fences():
    decoded = decode_generated_test("```json\n" + GOOD_TEST + "\n```")
    assert decoded.filename == "login.spec.ts"


def test_decode_reports_missing_dependencies():
    raw = json.dumps({"filename": "a.spec.ts", "content": "x"})
    assert decode_generated_test(raw).missing_fields() == ["dependencies"]


def test_decode_garbage():
    with pytest.raises(StructuredOutputError):
        decode_generated_test("[1, 2, 3]")


def test_decode_verdict_accepts_string_booleans():
    verdict = decode_verdict('{"passed": "false", "feedback": "nope"}')
    assert verdict.passed is False
    assert decode_verdict('{"passed": true, "feedback": null}').feedback == ""
