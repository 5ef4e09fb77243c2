"""Orchestrator agent.

Coordinates the other agents to run a complete test-generation pipeline:
analyze site → split criteria → generate/evaluate per criterion → report.
"""

from __future__ import annotations

from typing import List, Optional

from loguru import logger

from agents.gen_eval_loop import GenerateEvaluateLoop
from agents.site_analyzer import SiteAnalyzerAgent
from clients.llm_client import ModelGateway, OpenAIModelGateway, build_openai_client
from clients.test_runner import SubprocessTestRunner, TestRunner
from config.settings import settings
from models.testing import AnalyzerResult, CriterionOutcome, PipelineReport
from storage.artifact_store import ArtifactStore
from utils.errors import StageError, TestRunnerError
from utils.helpers import normalize_url


class OrchestratorAgent:
    """
    Top-level agent that runs the full pipeline for one website.

    Pipeline steps:
    1. SiteAnalyzerAgent     – explore the site, return tech spec + criteria
    2. split_criteria        – one criterion per blank-line separated block
    3. GenerateEvaluateLoop  – one accepted (or best-effort) test per criterion
    4. ArtifactStore         – persist a PipelineReport as JSON

    A criterion whose loop fails is recorded as ``failed`` and the run moves on
    to the next criterion.
    """

    def __init__(
        self,
        analyzer_gateway: Optional[ModelGateway] = None,
        generator_gateway: Optional[ModelGateway] = None,
        store: Optional[ArtifactStore] = None,
        runner: Optional[TestRunner] = None,
        analyzer: Optional[SiteAnalyzerAgent] = None,
        log=None,
    ) -> None:
        self._log = log or logger.bind(component="orchestrator")
        if analyzer_gateway is None or generator_gateway is None:
            llm = build_openai_client()
            analyzer_gateway = analyzer_gateway or OpenAIModelGateway(
                llm, model=settings.analyzer_model, max_tokens=settings.analyzer_max_tokens
            )
            generator_gateway = generator_gateway or OpenAIModelGateway(
                llm, model=settings.generator_model, max_tokens=settings.generator_max_tokens
            )
        self._store = store or ArtifactStore()
        self._runner = runner or SubprocessTestRunner(cwd=str(self._store.root))
        self._analyzer = analyzer or SiteAnalyzerAgent(analyzer_gateway, log=self._log)
        self._generator_gateway = generator_gateway

    @property
    def store(self) -> ArtifactStore:
        return self._store

    async def run(
        self,
        url: str,
        prompt: str = "",
        max_iterations: Optional[int] = None,
        criteria_limit: Optional[int] = None,
    ) -> PipelineReport:
        """
        Execute the full pipeline.

        Args:
            url: Website under test.
            prompt: Extra instructions for the analyzer.
            max_iterations: Retries per criterion (default from settings).
            criteria_limit: Only process the first N criteria.

        Returns:
            Populated PipelineReport persisted to disk.
        """
        url = normalize_url(url)
        self._ensure_runner_ready()
        logger.info("=" * 60)
        logger.info(f"OrchestratorAgent: generating tests for {url}")
        logger.info("=" * 60)

        self._log.info("[1/3] Analyzing site...")
        analysis = await self._analyzer.run(url, prompt)

        criteria = analysis.criteria_list()
        if criteria_limit is not None:
            criteria = criteria[:criteria_limit]
        self._log.info(f"[2/3] {len(criteria)} criteria to cover.")

        self._log.info("[3/3] Generating tests...")
        outcomes = await self.generate_tests(analysis, len(criteria), max_iterations)

        report = PipelineReport(
            url=url,
            tech_spec=analysis.tech_spec,
            artifacts_dir=str(self._store.tests_dir),
            outcomes=outcomes,
        )
        self._store.save_report(report)
        self._log.success(
            f"OrchestratorAgent: done. {report.accepted_count}/{len(outcomes)} criteria accepted."
        )
        return report

    async def generate_tests(
        self,
        analysis: AnalyzerResult,
        count: Optional[int] = None,
        max_iterations: Optional[int] = None,
    ) -> List[CriterionOutcome]:
        """Run the generate/evaluate loop for the first *count* criteria, sequentially."""
        self._ensure_runner_ready()
        criteria = analysis.criteria_list()
        count = len(criteria) if count is None else min(count, len(criteria))
        loop = GenerateEvaluateLoop(
            self._generator_gateway,
            self._runner,
            self._store,
            max_iterations=max_iterations,
            log=self._log,
        )

        outcomes: List[CriterionOutcome] = []
        for index in range(count):
            try:
                result = await loop.run(analysis, index)
            except StageError as exc:
                self._log.error(f"Criterion {index + 1} failed in {exc.stage}: {exc}")
                outcomes.append(
                    CriterionOutcome(
                        index=index,
                        criterion=criteria[index],
                        status="failed",
                        error=str(exc),
                    )
                )
                continue
            outcomes.append(
                CriterionOutcome(
                    index=index,
                    criterion=criteria[index],
                    artifact_path=result.artifact_path,
                    status=result.status,
                    iterations=result.iterations,
                )
            )
        return outcomes

    def _ensure_runner_ready(self) -> None:
        try:
            self._runner.check_ready()
        except TestRunnerError as exc:
            raise StageError("setup", str(exc), exc.context) from exc
