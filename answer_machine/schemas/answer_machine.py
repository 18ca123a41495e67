"""Answer Machine Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# Token accounting
class TokenUsage(BaseModel):
    """Token counts and cost for a single LLM-consuming operation."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0
    cost_in_usd: float = 0.0


class TokenTotals(BaseModel):
    """Aggregated token usage for a run."""

    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_reasoning_tokens: int = 0
    total_tokens: int = 0
    cost_in_usd: float = 0.0


class TokenTypeStats(BaseModel):
    """Per query type token statistics."""

    count: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    avg_tokens: int = 0
    max_tokens: int = 0


# LLM
class LlmConfig(BaseModel):
    """Resolved provider, credentials and model for an LLM call."""

    provider: str
    api_key: str = ""
    endpoint: str
    model: str


class LLMResult(BaseModel):
    """Outcome of one LLM call. `raw` is the decoded provider response."""

    success: bool
    content: str = ""
    raw: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


# Iteration state
class IterationLimits(BaseModel):
    """Limits derived from the current iteration number."""

    has_reached_min: bool
    has_reached_max: bool
    should_continue: bool


class EvaluationResult(BaseModel):
    """Satisfaction verdict on the latest intermediate answer."""

    is_satisfactory: bool
    gaps: List[str] = Field(default_factory=list)
    reasoning: str = ""
    tokens: Optional[TokenUsage] = None


class IterationDecision(BaseModel):
    """Continue/stop decision after an evaluation."""

    should_continue: bool
    reason: str


class PriorGaps(BaseModel):
    """Gaps resolved for the current iteration and whether they came from a re-evaluation."""

    gaps: List[str] = Field(default_factory=list)
    is_continuing_for_min: bool = False
    recovered: bool = False


class IterationResult(BaseModel):
    """Result of processing one iteration."""

    should_continue: bool
    next_gaps: Optional[List[str]] = None
    error_reason: Optional[str] = None


class RunResolution(BaseModel):
    """Run selected (or created) for an orchestration."""

    run_id: UUID
    current_iteration: int
    resumed: bool = False


# Strategy outputs
class DecompositionResult(BaseModel):
    """Questions produced for an iteration and the tokens spent producing them."""

    questions: List[str] = Field(default_factory=list)
    tokens: TokenUsage = Field(default_factory=TokenUsage)


class SubQuestionAnswerResult(BaseModel):
    """Outcome of answering a single sub-question."""

    success: bool
    answer: Optional[str] = None
    context_ids: List[str] = Field(default_factory=list)
    tokens: Optional[TokenUsage] = None
    used_fallback: bool = False
    error_reason: Optional[str] = None


class SynthesisResult(BaseModel):
    """Intermediate answer for an iteration."""

    answer: str
    tokens: TokenUsage = Field(default_factory=TokenUsage)


class FinalAnswerResult(BaseModel):
    """Outcome of final answer generation for a run."""

    success: bool
    answer: str = ""
    tokens: Optional[TokenUsage] = None
    error_reason: Optional[str] = None


class AnswerMachineResult(BaseModel):
    """Orchestrator outcome. `data` is always None; callers poll run state instead."""

    success: bool
    error_reason: str = ""
    data: Optional[Any] = None
    cancelled: bool = False


class SubQuestionCounts(BaseModel):
    """Sub-question counts by status."""

    total: int = 0
    pending: int = 0
    answered: int = 0
    error: int = 0
    skipped: int = 0


# API
class RunStartRequest(BaseModel):
    """Request to start or resume the Answer Machine on a thread."""

    username: str
    continue_existing: bool = False


class RunStartResponse(BaseModel):
    """Response after enqueueing an orchestration job."""

    thread_id: UUID
    job_id: UUID
    message: str


class SubQuestionSchema(BaseModel):
    """Sub-question as returned by the status endpoint."""

    sub_question_id: UUID
    question: str
    answer: str = ""
    status: str
    error_reason: str = ""
    created_at: Optional[datetime] = None


class RunStatusResponse(BaseModel):
    """Polling view of the latest run on a thread."""

    thread_id: UUID
    run_id: Optional[UUID] = None
    status: Optional[str] = None
    error_reason: str = ""
    is_processing: bool = False
    current_iteration: int = 0
    max_iterations: int = 1
    sub_questions: List[SubQuestionSchema] = Field(default_factory=list)
    totals: TokenTotals = Field(default_factory=TokenTotals)
    breakdown: Dict[str, TokenTypeStats] = Field(default_factory=dict)


class RunStatsResponse(BaseModel):
    """Per-run statistics."""

    thread_id: UUID
    run_id: UUID
    status: str
    current_iteration: int
    sub_questions: SubQuestionCounts
    intermediate_answer_count: int
    final_answer: str = ""
    totals: TokenTotals
    breakdown: Dict[str, TokenTypeStats] = Field(default_factory=dict)
