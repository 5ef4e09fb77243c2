"""Generate → execute → evaluate loop for one test criterion.

The generator writes a Playwright test file for a single criterion, the
runner executes it and the evaluator judges the file together with the run
output. A rejection feeds the evaluator's feedback and the current file back
to the generator, up to ``max_iterations`` retries.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger
from pydantic import ValidationError

from clients.llm_client import ModelGateway
from clients.test_runner import TestRunner
from config.settings import settings
from models.conversation import ToolDefinition, Turn
from models.testing import (
    AnalyzerResult,
    GeneratedTest,
    GeneratedTestLoose,
    GenEvalResult,
    LoopState,
    TestArtifact,
    TestRunResult,
    Verdict,
)
from storage.artifact_store import ArtifactStore
from utils.errors import (
    ArtifactValidationError,
    BotError,
    StageError,
    StructuredOutputError,
)
from utils.helpers import strip_code_fences, truncate

GENERATE_TOOL_NAME = "get_generate_test_file_return"
EVALUATE_TOOL_NAME = "get_generate_feedback_return"
FEEDBACK_PREFIX = "FEEDBACK: "
ALLOWED_DEPENDENCY = "@playwright/test"

# Per-page cap on HTML handed to the generator.
_MAX_PAGE_CHARS = 12_000
_MAX_OUTPUT_CHARS = 20_000
_FEEDBACK_TAIL_CHARS = 1_500

GENERATOR_PROMPT = """\
You are a test engineer, your task is to write a focused end-to-end test suite written in TypeScript using Playwright Framework. You have been provided inputs from an analyzer.
The inputs are a technical specification (description) of the website, a map (directory) of the website's pages with urls as keys and html page content as values and a test criterion (scenario) for
the test you need to write. Focus on the provided criterion and tech spec. Your output should be one test suite file.

Important points:
- Focus on the provided criterion
- Do not add any other dependencies, only @playwright/test is allowed.
- The test file should be around 100 lines of code, the closer the better.
- Write concise test cases that won't fail instead of complex cases.

Format the tests following Playwright best practices with clear test descriptions and organized test suites.

IMPORTANT: When providing the test file, ensure proper JSON formatting:
1. The "filename" field must be a string and cannot be empty
2. All string values, including code in the "content" field, must be enclosed in double quotes (").
3. Use \\n for newlines, and try to use single quotes where possible (so we don't have to escape the quotes).
4. Never over-escape the quotes, only escape them when necessary.
5. The "dependencies" field is an array of strings, e.g. ["@playwright/test"].

Invalid formatting will cause errors in processing your response.
"""

REVISION_PROMPT = """\
An Evaluation of the test file has been provided. Please revise the test file based on the feedback. Leave everything else the same. Mainly focus on fixing the failing tests. The resulting file should be no longer than 100 lines of code.
"""

EVALUATOR_PROMPT = """\
You are a test engineer, your task is to evaluate the test file and provide feedback on the test file.
Your feedback should be concise and to the point. You should provide feedback on the following:
- Focus mainly on fixing the failing tests.
- The only allowed dependency is @playwright/test, no other dependencies are allowed.
- Whether the test file is covering the provided criterion
- The length of the test file should be around 100 lines of code, the closer the better.
- Whether the test scope is too broad. If the test file is more than 100 lines of code, it is too broad, so suggest what tests to remove (prioritize removing the tests that are failing)

IMPORTANT: When providing the feedback, ensure proper JSON formatting:
1. The "passed" field must be a boolean. Return true if the test file is good enough and does not need more work and false otherwise.
   Remember, "passed" cannot be true if the test is not passing.
2. The "feedback" field must be a string and cannot be empty if "passed" is false. Here, you should write your feedback on the test file.
3. Do not include newlines or any characters that would need to be escaped in the "feedback" field.

Invalid formatting will cause errors in processing your response.
"""

GENERATE_TOOL = ToolDefinition(
    name=GENERATE_TOOL_NAME,
    description=(
        "Generate structured Playwright e2e test suite based on provided inputs. Return "
        "organized TypeScript code with proper test organization, assertions, and comments."
    ),
    input_schema=GeneratedTest.model_json_schema(),
)

EVALUATE_TOOL = ToolDefinition(
    name=EVALUATE_TOOL_NAME,
    description="Evaluate a generated Playwright test file against its run output.",
    input_schema=Verdict.model_json_schema(),
)


# ── Decoding ──────────────────────────────────────────────────────────────────


def decode_generated_test(raw: str) -> GeneratedTest:
    """Decode the generator's JSON, strictly first and then leniently.

    The lenient pass strips Markdown fences and accepts a stringified
    dependency list. Raises ``StructuredOutputError`` when both fail.
    """
    try:
        return GeneratedTest.model_validate_json(raw)
    except ValidationError as strict_exc:
        logger.debug(f"Strict decode failed, trying fallback: {strict_exc.error_count()} errors")
    try:
        return GeneratedTestLoose.model_validate_json(strip_code_fences(raw)).to_strict()
    except (ValidationError, ValueError) as exc:
        raise StructuredOutputError(
            f"couldn't process generator response: {exc}",
            {"raw": raw[:500]},
        ) from exc


def decode_verdict(raw: str) -> Verdict:
    """Decode the evaluator's JSON; string booleans such as ``"false"`` are accepted."""
    for candidate in (raw, strip_code_fences(raw)):
        try:
            return Verdict.model_validate_json(candidate)
        except ValidationError:
            continue
    raise StructuredOutputError("couldn't process evaluator response", {"raw": raw[:500]})


def build_generator_context(analysis: AnalyzerResult, criterion: str) -> str:
    parts = ["INPUTS: \n", "TECHNICAL SPECIFICATION: ", analysis.tech_spec]
    parts.append("\nCONTENT MAP (SEPARATED BY 2 NEWLINES): ")
    for url, content in analysis.content_map.items():
        parts.append(f"{url}: {content[:_MAX_PAGE_CHARS]}\n\n")
    parts += ["\nTEST CRITERION: ", criterion, "\n---END PAGE---\n\n"]
    return "".join(parts)


def build_evaluator_context(artifact: TestArtifact, run: TestRunResult, criterion: str) -> str:
    return (
        "INPUTS: \n"
        f"\nTEST CRITERION: {criterion}"
        f"\nTEST FILE NAME: {artifact.filename}"
        f"\nTEST FILE CONTENTS: {artifact.content}"
        f"\nTEST RUN {'PASSED' if run.success else 'FAILED'}"
        f"{' (TIMED OUT)' if run.timed_out else ''}"
        f"\nTEST OUTPUT: {truncate(run.output, _MAX_OUTPUT_CHARS)}"
        "\n---END PAGE---\n\n"
    )


# ── Loop ──────────────────────────────────────────────────────────────────────


class GenerateEvaluateLoop:
    """
    Iterate generate → execute → evaluate for one criterion.

    Exhausting the retries is not an error: the last artifact is returned with
    ``status="exhausted"``. At most ``max_iterations + 1`` generations happen.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        runner: TestRunner,
        store: ArtifactStore,
        max_iterations: Optional[int] = None,
        require_passing_run: Optional[bool] = None,
        evaluator: Optional[ModelGateway] = None,
        log=None,
    ) -> None:
        self._gateway = gateway
        self._evaluator = evaluator or gateway
        self._runner = runner
        self._store = store
        self._max_iterations = settings.gen_eval_max_iterations if max_iterations is None else max_iterations
        self._require_passing_run = (
            settings.require_passing_run if require_passing_run is None else require_passing_run
        )
        self._log = log or logger.bind(component="gen_eval")

    async def run(
        self,
        analysis: AnalyzerResult,
        criterion_index: int,
        max_iterations: Optional[int] = None,
    ) -> GenEvalResult:
        """
        Produce an accepted (or best-effort) test file for one criterion.

        Raises:
            StageError: A stage failed; ``stage`` is setup, generate, execute
                or evaluate.
        """
        limit = self._max_iterations if max_iterations is None else max_iterations
        criteria = analysis.criteria_list()
        if limit < 0:
            raise StageError("setup", f"max_iterations must be non-negative, got {limit}")
        if not 0 <= criterion_index < len(criteria):
            raise StageError(
                "setup",
                f"criterion index {criterion_index} out of range (have {len(criteria)})",
            )
        criterion = criteria[criterion_index]
        context = build_generator_context(analysis, criterion)
        state = LoopState()

        self._log.info(f"Criterion {criterion_index + 1}/{len(criteria)}: {criterion[:80]!r}")
        while True:
            artifact = await self._generate(state, context, criterion_index)
            run = await self._execute(state, artifact)
            verdict = await self._evaluate(artifact, run, criterion)

            if verdict.passed:
                self._log.success(
                    f"Criterion {criterion_index + 1}: accepted after {state.iteration + 1} iteration(s)."
                )
                return GenEvalResult(
                    artifact_path=artifact.path,
                    status="accepted",
                    iterations=state.iteration + 1,
                    generations=state.generations,
                    verdict=verdict,
                )

            self._log.info(f"Evaluator rejected the test file: {verdict.feedback[:200]}")
            if state.iteration >= limit:
                self._log.warning(
                    f"Criterion {criterion_index + 1}: no accepted test after "
                    f"{state.iteration + 1} iteration(s); keeping the last attempt."
                )
                return GenEvalResult(
                    artifact_path=artifact.path,
                    status="exhausted",
                    iterations=state.iteration + 1,
                    generations=state.generations,
                    verdict=verdict,
                )

            state.feedback = FEEDBACK_PREFIX + verdict.feedback
            state.iteration += 1

    # ── Stages ────────────────────────────────────────────────────────────────

    async def _generate(self, state: LoopState, context: str, index: int) -> TestArtifact:
        prompt = GENERATOR_PROMPT
        if state.feedback and state.artifact is not None:
            prompt = (
                REVISION_PROMPT
                + state.feedback
                + "\nTEST FILE CURRENT CONTENT:\n\n"
                + state.artifact.content
            )

        try:
            raw = await self._gateway.structured_completion(
                prompt,
                GENERATE_TOOL,
                context=context,
                history=state.history,
                max_tokens=settings.generator_max_tokens,
            )
            state.generations += 1
            state.history.append(Turn.user_text(prompt))
            state.history.append(Turn.assistant_text(raw))

            generated = decode_generated_test(raw)
            missing = generated.missing_fields()
            if missing:
                raise ArtifactValidationError(
                    f"generated test is missing {', '.join(missing)}",
                    {"missing": missing},
                )
            extra = [dep for dep in generated.dependencies if dep != ALLOWED_DEPENDENCY]
            if extra:
                self._log.warning(f"Generator asked for extra dependencies: {extra}")

            artifact = self._store.write_artifact(
                index,
                generated.content,
                suggested_filename=generated.filename,
                dependencies=generated.dependencies,
            )
        except (BotError, OSError) as exc:
            raise StageError("generate", str(exc), {"iteration": state.iteration}) from exc

        state.artifact = artifact
        self._log.debug(f"Generated {artifact.path} ({len(artifact.content)} chars)")
        return artifact

    async def _execute(self, state: LoopState, artifact: TestArtifact) -> TestRunResult:
        try:
            run = await self._runner.run(artifact.path)
        except (BotError, OSError) as exc:
            raise StageError("execute", str(exc), {"path": artifact.path}) from exc
        state.executions += 1
        return run

    async def _evaluate(self, artifact: TestArtifact, run: TestRunResult, criterion: str) -> Verdict:
        try:
            raw = await self._evaluator.structured_completion(
                EVALUATOR_PROMPT,
                EVALUATE_TOOL,
                context=build_evaluator_context(artifact, run, criterion),
            )
            verdict = decode_verdict(raw)
        except BotError as exc:
            raise StageError("evaluate", str(exc), {"path": artifact.path}) from exc

        if verdict.passed and not run.success and self._require_passing_run:
            self._log.warning("Evaluator accepted a failing test run; treating it as a rejection.")
            return Verdict(
                passed=False,
                feedback=(
                    "The test run failed, so the file cannot be accepted yet. Output tail: "
                    + truncate(run.output, _FEEDBACK_TAIL_CHARS)
                ),
            )
        if verdict.passed:
            return Verdict(passed=True, feedback="")
        if not verdict.feedback.strip():
            return Verdict(
                passed=False,
                feedback="No feedback given. Output tail: " + truncate(run.output, _FEEDBACK_TAIL_CHARS),
            )
        return verdict
