from .orchestrator import OrchestratorAgent
from .site_analyzer import SiteAnalyzerAgent
from .site_crawler import SiteCrawler
from .tool_loop import ToolOrchestrationLoop
from .gen_eval_loop import GenerateEvaluateLoop, decode_generated_test, decode_verdict
from .tools import ContentAccumulator, build_analyzer_tools, clean_html, get_content, get_sitemap

__all__ = [
    "OrchestratorAgent",
    "SiteAnalyzerAgent",
    "SiteCrawler",
    "ToolOrchestrationLoop",
    "GenerateEvaluateLoop",
    "decode_generated_test",
    "decode_verdict",
    "ContentAccumulator",
    "build_analyzer_tools",
    "clean_html",
    "get_content",
    "get_sitemap",
]
