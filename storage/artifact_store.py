"""Filesystem store for generated test files and run reports."""

from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from loguru import logger

from config.settings import settings
from models.testing import PipelineReport, TestArtifact


class ArtifactStore:
    """
    Scratch directory holding the generated tests of one run.

    Tests live under ``root/tests/`` with one stable file per criterion
    (``criterion-01.spec.ts``), so a regenerated test overwrites the previous
    attempt. When no directory is given a temp dir is created and owned by the
    store; ``cleanup()`` (or leaving the ``with`` block) removes it.
    Run reports go to ``reports_dir`` as ``run_report_<timestamp>.json``.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        reports_dir: Optional[str] = None,
        suffix: Optional[str] = None,
        log=None,
    ) -> None:
        root = root if root is not None else settings.artifacts_dir
        self._owned = root is None
        self._root = Path(root) if root else Path(tempfile.mkdtemp(prefix="playwright-tests-"))
        self._tests_dir = self._root / "tests"
        self._reports_dir = Path(reports_dir or settings.reports_dir)
        self._suffix = suffix or settings.test_file_suffix
        self._log = log or logger.bind(component="store")
        self._tests_dir.mkdir(parents=True, exist_ok=True)

    def __enter__(self) -> "ArtifactStore":
        return self

    def __exit__(self, *args) -> None:
        self.cleanup()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def tests_dir(self) -> Path:
        return self._tests_dir

    # ── Test files ────────────────────────────────────────────────────────────

    def artifact_path(self, index: int) -> Path:
        """Stable path of the test file for criterion *index*."""
        if index < 0:
            raise ValueError(f"criterion index must be non-negative, got {index}")
        return self._tests_dir / f"criterion-{index + 1:02d}{self._suffix}"

    def write_artifact(
        self,
        index: int,
        content: str,
        suggested_filename: str = "",
        dependencies: Optional[List[str]] = None,
    ) -> TestArtifact:
        path = self.artifact_path(index)
        path.write_text(content, encoding="utf-8")
        self._log.debug(f"Wrote {len(content)} chars to {path}")
        return TestArtifact(
            filename=path.name,
            content=content,
            path=str(path),
            suggested_filename=suggested_filename,
            dependencies=list(dependencies or []),
        )

    def read(self, index: int) -> Optional[str]:
        path = self.artifact_path(index)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def list_artifacts(self) -> List[Path]:
        return sorted(self._tests_dir.glob(f"*{self._suffix}"))

    def cleanup(self) -> None:
        """Remove the scratch directory if this store created it."""
        if self._owned and self._root.exists():
            shutil.rmtree(self._root, ignore_errors=True)
            self._log.debug(f"Removed {self._root}")

    # ── Reports ───────────────────────────────────────────────────────────────

    def save_report(self, report: PipelineReport, filename: Optional[str] = None) -> Path:
        """Persist a run report as JSON."""
        self._reports_dir.mkdir(parents=True, exist_ok=True)
        if filename is None:
            ts = report.generated_at.strftime("%Y%m%d_%H%M%S_%f")
            filename = f"run_report_{ts}.json"
        path = self._reports_dir / filename
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(report.model_dump(mode="json"), fh, indent=2, default=str)
        self._log.info(f"Report saved to {path}")
        return path

    def load_latest_report(self) -> Optional[PipelineReport]:
        """Load the most recently generated run report."""
        reports = sorted(self._reports_dir.glob("run_report_*.json"), reverse=True)
        if not reports:
            return None
        with open(reports[0], "r", encoding="utf-8") as fh:
            return PipelineReport(**json.load(fh))
