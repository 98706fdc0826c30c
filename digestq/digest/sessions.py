"""
Per-user digest sessions.

Each user id gets its own ThreadAnalysisOrchestrator; nothing is shared
between users except the stateless budgeter and LLM capability.
"""

from __future__ import annotations

from collections.abc import Callable

from digestq.digest.orchestrator import PreClassifier, SessionState, ThreadAnalysisOrchestrator
from digestq.digest.token_budget import TokenBudgeter
from digestq.llm.client import LLMCapability
from digestq.observability.logging import get_logger
from digestq.utils.redaction import redact

logger = get_logger(__name__)


class SessionRegistry:
    def __init__(
        self,
        llm: LLMCapability,
        budgeter: TokenBudgeter | None = None,
        pre_classifier: PreClassifier | None = None,
        factory: Callable[[], ThreadAnalysisOrchestrator] | None = None,
    ):
        self.budgeter = budgeter or TokenBudgeter()
        self._factory = factory or (
            lambda: ThreadAnalysisOrchestrator(
                llm, budgeter=self.budgeter, pre_classifier=pre_classifier
            )
        )
        self._sessions: dict[str, ThreadAnalysisOrchestrator] = {}

    @staticmethod
    def _check_user_id(user_id: str) -> str:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValueError(f"invalid user_id: {user_id!r} - must be non-empty string")
        return user_id

    def get(self, user_id: str) -> ThreadAnalysisOrchestrator:
        """Orchestrator for `user_id`, created on first use."""
        self._check_user_id(user_id)
        session = self._sessions.get(user_id)
        if session is None:
            session = self._factory()
            self._sessions[user_id] = session
            logger.info("Created digest session for user %s", redact(user_id))
        return session

    def peek(self, user_id: str) -> ThreadAnalysisOrchestrator | None:
        return self._sessions.get(self._check_user_id(user_id))

    def discard(self, user_id: str) -> None:
        if self._sessions.pop(user_id, None) is not None:
            logger.info("Discarded digest session for user %s", redact(user_id))

    def state_counts(self) -> dict[str, int]:
        """Number of live sessions per state, every state present."""
        counts = {state.value: 0 for state in SessionState}
        for session in self._sessions.values():
            counts[session.state.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions
