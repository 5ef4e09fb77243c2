"""Pydantic models for analysis output, generated tests and their verdicts."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.conversation import Conversation
from utils.helpers import split_criteria


class AnalyzerResult(BaseModel):
    """What the site analyzer hands to the generate/evaluate loop."""

    tech_spec: str
    content_map: Dict[str, str] = Field(default_factory=dict)
    criteria: str = Field(..., description="Individual criteria separated by a blank line")

    def criteria_list(self) -> List[str]:
        return split_criteria(self.criteria)


class GeneratedTest(BaseModel):
    """Strict shape of the generator's structured reply."""

    filename: str = Field(
        ...,
        description="Name of the test file (e.g., 'login.spec.ts')",
    )
    content: str = Field(..., description="Complete content of the test file")
    dependencies: List[str] = Field(..., description="NPM packages required for the test file")

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.filename.strip():
            missing.append("filename")
        if not self.content.strip():
            missing.append("content")
        if not self.dependencies:
            missing.append("dependencies")
        return missing


class GeneratedTestLoose(BaseModel):
    """Fallback shape: tolerates a stringified dependency list and missing fields."""

    model_config = ConfigDict(extra="ignore")

    filename: str = ""
    content: str = ""
    dependencies: Union[List[str], str, None] = None

    @field_validator("filename", "content", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    def to_strict(self) -> GeneratedTest:
        deps = self.dependencies
        if isinstance(deps, str):
            text = deps.strip()
            try:
                parsed = json.loads(text) if text else []
            except json.JSONDecodeError:
                parsed = [part.strip() for part in text.split(",")]
            if isinstance(parsed, str):
                parsed = [parsed]
            deps = [str(item).strip() for item in parsed if str(item).strip()]
        return GeneratedTest(
            filename=self.filename,
            content=self.content,
            dependencies=list(deps or []),
        )


class TestArtifact(BaseModel):
    """A generated test written to the artifact store."""

    __test__ = False

    filename: str
    content: str
    path: str
    suggested_filename: str = ""
    dependencies: List[str] = Field(default_factory=list)


class Verdict(BaseModel):
    """Evaluator judgement; ``feedback`` only matters for a rejection."""

    passed: bool = Field(
        ...,
        description="Whether the test file is good enough or needs more work",
    )
    feedback: str = Field(default="", description="Feedback on the test file")

    @field_validator("feedback", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


class TestRunResult(BaseModel):
    """Combined stdout+stderr of one test run and whether it exited cleanly."""

    __test__ = False

    output: str = ""
    success: bool = False
    timed_out: bool = False


class LoopState(BaseModel):
    """Mutable state of one generate/evaluate loop run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    iteration: int = 0
    artifact: Optional[TestArtifact] = None
    feedback: str = ""
    history: Conversation = Field(default_factory=Conversation)
    generations: int = 0
    executions: int = 0


class GenEvalResult(BaseModel):
    """Terminal state of a generate/evaluate loop run."""

    artifact_path: str
    status: Literal["accepted", "exhausted"]
    iterations: int
    generations: int
    verdict: Optional[Verdict] = None

    @property
    def accepted(self) -> bool:
        return self.status == "accepted"


class CriterionOutcome(BaseModel):
    index: int
    criterion: str
    artifact_path: Optional[str] = None
    status: Literal["accepted", "exhausted", "failed"]
    iterations: int = 0
    error: Optional[str] = None


class PipelineReport(BaseModel):
    """Persisted summary of one end-to-end run."""

    generated_at: datetime = Field(default_factory=datetime.utcnow)
    url: str
    tech_spec: str = ""
    artifacts_dir: str = ""
    outcomes: List[CriterionOutcome] = Field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "accepted")
