"""Pydantic schemas for the conversational knowledge assistant."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class InsightCategory(str, Enum):
    """Buckets an insight can be filed under."""

    BEST_PRACTICE = "best_practice"
    IMPROVEMENT = "improvement"
    AVOID_PATTERN = "avoid_pattern"


class FeedbackRating(str, Enum):
    """End-user verdict on a single answer."""

    APPROVE = "approve"
    DISAPPROVE = "disapprove"


class SuggestionState(str, Enum):
    """Lifecycle of an AI-suggested instruction candidate."""

    IDLE = "idle"
    SUGGESTED = "suggested"
    APPROVED = "approved"
    REJECTED = "rejected"


def clamp_importance(value: Any, default: int = 5) -> int:
    """Coerce a judge-supplied importance into an integer within 1-10."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(1, min(10, number))


# =============================================================================
# Corpus
# =============================================================================


class Document(BaseModel):
    """A reference passage available to the retriever."""

    id: str | None = None
    source_name: str
    content: str
    ingested_at: str | None = None


class DocumentCreate(BaseModel):
    """Document handed over by the ingestion collaborator."""

    source_name: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class TrainingPairCreate(BaseModel):
    """Operator-authored question/answer pair."""

    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: str = Field("general")


# =============================================================================
# Conversation
# =============================================================================


class AskRequest(BaseModel):
    """Incoming visitor question."""

    question: str = Field(..., min_length=1, max_length=4000)
    session_id: str = Field(..., min_length=1, max_length=200)


class AskResponse(BaseModel):
    """Answer returned to the visitor."""

    answer: str
    turn_id: str | None = None
    accepted: bool = True


class ConversationTurnResponse(BaseModel):
    """One persisted question/answer exchange."""

    id: str
    session_id: str
    user_question: str
    bot_response: str
    created_at: str | None = None


class GateResult(BaseModel):
    """Verdict of the topic acceptability gate."""

    accepted: bool = True
    confidence: float = Field(0.5, ge=0, le=1)


class GateJudgeOutput(BaseModel):
    """Structured output of the gate judge."""

    accepted: bool
    confidence: float = 0.5

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            return max(0.0, min(1.0, float(v)))
        except (TypeError, ValueError):
            return 0.5


# =============================================================================
# Feedback
# =============================================================================


class FeedbackRequest(BaseModel):
    """Approve/disapprove signal on a turn."""

    turn_id: str = Field(..., min_length=1)
    rating: FeedbackRating
    comment: str | None = Field(None, max_length=2000)


class FeedbackResponse(BaseModel):
    """Stored feedback row."""

    id: str
    conversation_turn_id: str
    session_id: str
    rating: FeedbackRating
    comment: str | None = None
    created_at: str | None = None


# =============================================================================
# Evaluation
# =============================================================================


class CriterionResult(BaseModel):
    """Normalized score for one criterion plus the judge's reasoning."""

    name: str
    score: float = Field(..., ge=0, le=1)
    comment: str = ""


class CriterionJudgeOutput(BaseModel):
    """Raw 1-5 rubric verdict from the judge model."""

    score: float
    comment: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> float:
        return max(1.0, min(5.0, float(v)))


class EvaluationResult(BaseModel):
    """Scored evaluation of one answer, before persistence."""

    criterion_scores: dict[str, float]
    criterion_comments: dict[str, str] = Field(default_factory=dict)
    overall_score: float = Field(..., ge=0, le=1)
    feedback_text: str = ""
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class BatchEvaluationSummary(BaseModel):
    """Outcome of evaluating every turn that has no evaluation yet."""

    total_turns: int = 0
    evaluated_before: int = 0
    newly_evaluated: int = 0
    failed: int = 0


class EvaluationStats(BaseModel):
    """Aggregate view over stored evaluations."""

    count: int = 0
    mean_overall: float | None = None
    mean_per_criterion: dict[str, float] = Field(default_factory=dict)
    last_week: float | None = None
    last_month: float | None = None


# =============================================================================
# Insights
# =============================================================================


class InsightResponse(BaseModel):
    """Insight row from DB."""

    id: str
    category: InsightCategory
    text: str
    examples: list[str] = Field(default_factory=list)
    source_evaluation_id: str | None = None
    source_feedback_id: str | None = None
    importance: int = Field(..., ge=1, le=10)
    is_active: bool = True
    created_at: str | None = None


class InsightToggleRequest(BaseModel):
    """Flip an insight on or off."""

    is_active: bool


class ProposedInsight(BaseModel):
    """One lesson proposed by the extraction judge."""

    category: Literal["best_practice", "improvement", "avoid_pattern"]
    text: str = Field(..., min_length=1)
    importance: int = 5

    @field_validator("importance", mode="before")
    @classmethod
    def clamp(cls, v: Any) -> int:
        return clamp_importance(v)


class ProposedInsights(BaseModel):
    """Extraction judge output."""

    insights: list[ProposedInsight] = Field(default_factory=list)


class MergeGroup(BaseModel):
    """Insights the dedup judge considers equivalent."""

    insight_ids: list[str | int] = Field(default_factory=list)
    merged_text: str = Field(..., min_length=1)


class MergeProposal(BaseModel):
    """Dedup judge output."""

    merge_groups: list[MergeGroup] = Field(default_factory=list)


class ExtractionSummary(BaseModel):
    """Counts produced by one extraction run."""

    evaluation_insights: int = 0
    feedback_insights: int = 0


class DeduplicationSummary(BaseModel):
    """Outcome of one dedup pass."""

    retired: int = 0


class InsightStats(BaseModel):
    """Active insight counts for dashboards."""

    total: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    avg_importance: float | None = None
    recent: list[InsightResponse] = Field(default_factory=list)


# =============================================================================
# Instruction
# =============================================================================


class InstructionTextRequest(BaseModel):
    """Operator-supplied instruction or formatting text."""

    text: str = Field(..., min_length=1)


class ApproveSuggestionRequest(BaseModel):
    """Approve the pending candidate, optionally after editing it."""

    text: str | None = None


class InstructionSuggestion(BaseModel):
    """Current state of the propose/approve workflow."""

    state: SuggestionState = SuggestionState.IDLE
    candidate: str | None = None
    source: Literal["ai", "template"] | None = None
    updated_at: str | None = None


class InstructionStatus(BaseModel):
    """Live instruction and where it came from."""

    instruction: str
    is_override: bool
    suggestion: InstructionSuggestion
