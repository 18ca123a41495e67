"""Iteration limits, the continue/stop rule and prior-gap resolution."""

import logging
from typing import List, Optional
from uuid import UUID

from answer_machine.schemas.answer_machine import (
    EvaluationResult,
    IterationDecision,
    IterationLimits,
    PriorGaps,
)

logger = logging.getLogger(__name__)


def check_iteration_limits(iteration_number: int, min_iterations: int, max_iterations: int) -> IterationLimits:
    has_reached_max = iteration_number >= max_iterations
    return IterationLimits(
        has_reached_min=iteration_number >= min_iterations,
        has_reached_max=has_reached_max,
        should_continue=not has_reached_max,
    )


def decide_continuation(evaluation: EvaluationResult, limits: IterationLimits) -> IterationDecision:
    """
    Continue/stop decision after an evaluation. Rules are checked in order;
    the first match wins.
    """
    if limits.has_reached_max:
        return IterationDecision(should_continue=False, reason="Max iterations reached")

    if not evaluation.is_satisfactory and evaluation.gaps:
        return IterationDecision(should_continue=True, reason="Answer not satisfactory, gaps identified")

    if evaluation.is_satisfactory and not limits.has_reached_min:
        return IterationDecision(
            should_continue=True, reason="Answer satisfactory but minimum iterations not reached"
        )

    if evaluation.is_satisfactory:
        return IterationDecision(should_continue=False, reason="Answer satisfactory and minimum iterations reached")

    if limits.has_reached_min:
        return IterationDecision(should_continue=False, reason="Minimum iterations reached, no gaps to address")

    # Not satisfactory, no gaps and below the minimum: iterate anyway to reach it
    return IterationDecision(should_continue=True, reason="Continue to reach minimum iterations despite no gaps")


class GapRecovery:
    """
    Recovers the previous iteration's gaps when they were not carried over,
    e.g. after a worker restart, by re-running the evaluator on it.
    """

    def __init__(self, evaluator):
        self.evaluator = evaluator

    def recover(self, run_id: UUID, iteration_number: int) -> List[str]:
        evaluation = self.evaluator.evaluate(run_id, iteration_number - 1)
        logger.info(f"Iteration {iteration_number}: recovered {len(evaluation.gaps)} gaps from iteration {iteration_number - 1}")
        return evaluation.gaps


def resolve_prior_gaps(
    run_id: UUID,
    iteration_number: int,
    carried_gaps: Optional[List[str]],
    gap_recovery: GapRecovery,
) -> PriorGaps:
    """
    Gaps feeding this iteration's decomposition.

    The first iteration has none. A non-empty carried list is used as is.
    Otherwise the previous iteration is re-evaluated and the iteration is
    flagged as continuing toward the minimum.
    """
    if iteration_number == 1:
        return PriorGaps()

    if carried_gaps:
        return PriorGaps(gaps=list(carried_gaps))

    return PriorGaps(
        gaps=gap_recovery.recover(run_id, iteration_number),
        is_continuing_for_min=True,
        recovered=True,
    )
