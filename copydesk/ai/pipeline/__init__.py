"""Pipeline contracts shared by agents and the orchestrator."""

from copydesk.ai.pipeline.contracts import FinalArticle, FinalOutput, JobSettings, QaInput, QaIssue, QaOutput, ResearchInput, ResearchOutput, SeoInput, SeoOutput, WriterInput, WriterOutput

__all__ = ["FinalArticle", "FinalOutput", "JobSettings", "QaInput", "QaIssue", "QaOutput", "ResearchInput", "ResearchOutput", "SeoInput", "SeoOutput", "WriterInput", "WriterOutput"]
