"""Satisfaction evaluation of the latest intermediate answer."""

import logging
from uuid import UUID

from answer_machine.agents.base import BaseAgent
from answer_machine.schemas.answer_machine import EvaluationResult
from answer_machine.services.run_store import RunStore

logger = logging.getLogger(__name__)

INSIGHT_KEYWORDS = ("analysis", "insights", "aspects", "considerations")

# Never satisfied before this iteration, always satisfied from the hard ceiling on
MIN_SATISFIABLE_ITERATION = 3
HARD_SATISFACTION_ITERATION = 7
MIN_QUALITY_SCORE = 2


class SatisfactionEvaluator(BaseAgent):
    """Strategy interface: decide whether the run's latest intermediate answer is good enough."""

    def __init__(self, llm_client, db_session):
        super().__init__(llm_client, db_session)
        self.runs = RunStore(db_session)

    def evaluate(self, run_id: UUID, iteration_number: int) -> EvaluationResult:
        raise NotImplementedError


class HeuristicSatisfactionEvaluator(SatisfactionEvaluator):
    """
    Scores the latest intermediate answer on three signals: length over 100
    characters, presence of an analytical keyword, and more than two
    paragraph blocks. A score of 2 or more satisfies from iteration 3;
    iteration 7 is satisfied unconditionally.
    """

    def evaluate(self, run_id: UUID, iteration_number: int) -> EvaluationResult:
        latest = self.runs.latest_intermediate_answer(run_id)

        substantial = len(latest) > 100
        insightful = any(keyword in latest for keyword in INSIGHT_KEYWORDS)
        comprehensive = bool(latest) and len(latest.split("\n\n")) > 2

        score = int(substantial) + int(insightful) + int(comprehensive)
        is_satisfactory = (
            iteration_number >= MIN_SATISFIABLE_ITERATION and score >= MIN_QUALITY_SCORE
        ) or iteration_number >= HARD_SATISFACTION_ITERATION

        logger.info(
            f"Iteration {iteration_number}: quality score {score}/3 (substantial={substantial}, "
            f"insights={insightful}, comprehensive={comprehensive}), satisfactory={is_satisfactory}"
        )

        gaps = []
        if not is_satisfactory:
            gaps.append(f"Need more detailed analysis (iteration {iteration_number})")
            if not substantial:
                gaps.append("More comprehensive content needed")
            if not insightful:
                gaps.append("Additional insights and perspectives needed")
            if not comprehensive:
                gaps.append("Broader coverage of the topic needed")

        verdict = "Answer meets quality criteria" if is_satisfactory else "Additional iteration needed for better analysis"
        return EvaluationResult(
            is_satisfactory=is_satisfactory,
            gaps=gaps,
            reasoning=f"Quality score: {score}/3. {verdict}",
        )
