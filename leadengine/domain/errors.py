from __future__ import annotations


class LeadEngineError(Exception):
    """Base class for errors raised by the scoring and distribution engine."""


class ValidationError(LeadEngineError):
    """Malformed input (policy, filter, activity). Nothing is written."""


class LeadNotFound(LeadEngineError):
    def __init__(self, lead_id: str) -> None:
        super().__init__(f"Lead {lead_id} not found")
        self.lead_id = lead_id


class AssignmentNotFound(LeadEngineError):
    def __init__(self, assignment_id: int) -> None:
        super().__init__(f"Assignment {assignment_id} not found")
        self.assignment_id = assignment_id


class NoAgentsAvailable(LeadEngineError):
    """The resolved agent pool is empty; the batch is aborted before any write."""


class NoLeadsAvailable(LeadEngineError):
    """The resolved lead pool is empty; the batch is aborted before any write."""


class PersistenceError(LeadEngineError):
    """A single assignment write failed. The batch continues with the rest."""

    def __init__(self, lead_id: str, agent_id: str, cause: Exception) -> None:
        super().__init__(f"could not persist assignment lead={lead_id} agent={agent_id}: {cause}")
        self.lead_id = lead_id
        self.agent_id = agent_id
        self.cause = cause
