"""Question decomposition: turns the conversation and prior gaps into sub-questions."""

import logging
import re
from typing import List, Optional
from uuid import UUID

from answer_machine.agents.base import BaseAgent
from answer_machine.models import AnswerMachineRun
from answer_machine.schemas.answer_machine import DecompositionResult, TokenUsage
from answer_machine.services.sub_question_store import SubQuestionStore

logger = logging.getLogger(__name__)

MIN_QUESTIONS = 3
MAX_QUESTIONS = 5
SIMILARITY_THRESHOLD = 0.8

GENERIC_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"what do you think",
        r"can you tell me more",
        r"what else",
        r"anything else",
        r"any other",
        r"do you have",
        r"are there",
        r"tell me about",
    )
]

# Whole words only, so "information" or "outlook" are not mistaken for formatting
FORMATTING_PATTERN = re.compile(
    r"\b(format|formatting|presentation|display|style|design|layout|appearance|look|visual)\b",
    re.IGNORECASE,
)


def jaccard_similarity(a: str, b: str) -> float:
    """Word-set Jaccard similarity of two questions (lowercased, whitespace split)."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _is_redundant(question: str, transcript: str) -> bool:
    keywords = [w for w in question.split() if len(w) > 3][:3]
    if not keywords:
        return False
    return all(k in transcript for k in keywords) and len(question) < 50


def filter_questions(questions: List[str], transcript: str = "") -> List[str]:
    """
    Drop empty, generic, formatting-related and redundant questions, then
    deduplicate near-identical ones (keeping the first) and cap at 5.

    Generic questions survive when they are long enough to be specific.
    A question is redundant when its first three meaningful words all appear
    in the transcript and it is short.
    """
    transcript = transcript.lower()
    kept = []

    for question in questions:
        lowered = (question or "").lower().strip()
        if not lowered:
            continue
        if any(p.search(lowered) for p in GENERIC_PATTERNS) and len(lowered) < 30:
            continue
        if FORMATTING_PATTERN.search(lowered):
            continue
        if _is_redundant(lowered, transcript):
            continue
        kept.append(question.strip())

    unique = []
    for question in kept:
        if not any(jaccard_similarity(question, existing) > SIMILARITY_THRESHOLD for existing in unique):
            unique.append(question)

    return unique[:MAX_QUESTIONS]


def pad_questions(questions: List[str], iteration_number: int) -> List[str]:
    questions = list(questions)
    number = len(questions)
    while len(questions) < MIN_QUESTIONS:
        number += 1
        filler = f"Additional question {number} for iteration {iteration_number}?"
        if filler not in questions:
            questions.append(filler)
    return questions[:MAX_QUESTIONS]


class QuestionDecompositionStrategy(BaseAgent):
    """
    Base decomposition strategy.

    Subclasses produce candidate questions; this class filters, bounds and
    persists them as pending sub-questions. Any failure yields no questions.
    """

    def __init__(self, llm_client, db_session):
        super().__init__(llm_client, db_session)
        self.sub_questions = SubQuestionStore(db_session)

    def generate_candidates(
        self,
        iteration_number: int,
        prior_gaps: List[str],
        is_continuing_for_min: bool,
        transcript: str,
    ) -> DecompositionResult:
        raise NotImplementedError

    def decompose(
        self,
        run_id: UUID,
        thread_id: UUID,
        username: str,
        iteration_number: int,
        prior_gaps: Optional[List[str]] = None,
        is_continuing_for_min: bool = False,
        transcript: str = "",
    ) -> DecompositionResult:
        try:
            candidates = self.generate_candidates(
                iteration_number, list(prior_gaps or []), is_continuing_for_min, transcript
            )

            questions = filter_questions(candidates.questions, transcript)
            if candidates.questions:
                questions = pad_questions(questions, iteration_number)

            if questions:
                run = self.db.query(AnswerMachineRun).filter(AnswerMachineRun.run_id == run_id).first()
                if not run:
                    logger.error(f"Run {run_id} not found, no sub-questions created")
                    return DecompositionResult()

                self.sub_questions.create_many(run_id, thread_id, run.parent_message_id, username, questions)

            logger.info(f"Generated {len(questions)} questions for iteration {iteration_number}")
            return DecompositionResult(questions=questions, tokens=candidates.tokens)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Question decomposition failed for run {run_id}: {e}", exc_info=True)
            return DecompositionResult()


class TemplateQuestionDecomposer(QuestionDecompositionStrategy):
    """Deterministic decomposition from fixed question templates and the prior gaps."""

    def generate_candidates(
        self,
        iteration_number: int,
        prior_gaps: List[str],
        is_continuing_for_min: bool,
        transcript: str,
    ) -> DecompositionResult:
        if iteration_number == 1:
            questions = [
                "What is the main topic of this conversation?",
                "What specific information is needed to provide a complete answer?",
                "What are the key requirements or constraints mentioned?",
                "What is the context or background information provided?",
            ]
        elif prior_gaps:
            first = prior_gaps[0]
            questions = [f"Can you provide more details about: {first}?"]
            if len(prior_gaps) > 1:
                questions.append(f"What additional information is needed regarding: {prior_gaps[1]}?")
            questions.append(f"How does this relate to the broader context of: {first}?")
            questions.append(f"What are the implications or consequences of: {first}?")
        else:
            questions = [
                f"What additional analysis is needed for iteration {iteration_number}?",
                "What other perspectives should be considered?",
                "What are the potential limitations or caveats?",
            ]

        questions = pad_questions(questions, iteration_number)
        return DecompositionResult(questions=questions, tokens=self.placeholder_tokens(100, 50))
