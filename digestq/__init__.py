"""DigestQ email digest pipeline"""

from __future__ import annotations

__version__ = "1.0.0"


def __getattr__(name: str):
    """
    Lazy imports to avoid loading the LLM stack when only importing lightweight modules.
    """
    if name == "ThreadAnalysisOrchestrator":
        from digestq.digest.orchestrator import ThreadAnalysisOrchestrator

        return ThreadAnalysisOrchestrator
    if name == "TokenBudgeter":
        from digestq.digest.token_budget import TokenBudgeter

        return TokenBudgeter
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = ["ThreadAnalysisOrchestrator", "TokenBudgeter"]
