"""Competition status state machine."""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import models as django_models
from django.utils import timezone

from . import models

logger = logging.getLogger(__name__)

Status = models.Competition.Status

__all__ = [
    "Transition",
    "InvalidTransition",
    "TRANSITIONS",
    "SCORE_SUBMISSION_STATUSES",
    "allowed_transitions",
    "can_submit_scores",
    "can_generate_ledger",
    "apply_transition",
]


class Transition(django_models.TextChoices):
    APPROVE = "approve", "Approve competition"
    REJECT = "reject", "Reject competition"
    SUBMIT_SCORES = "submit_scores", "Submit score batch"
    REVIEW_SCORES = "review_scores", "Review score batch"
    WITHDRAW_SCORES = "withdraw_scores", "Withdraw score batch"


class InvalidTransition(ValidationError):
    """Raised when a competition's status does not permit the requested action."""

    def __init__(self, competition: models.Competition, transition: str) -> None:
        self.competition = competition
        self.transition = transition
        super().__init__(
            "Cannot %(action)s while the competition is %(status)s.",
            code="invalid_transition",
            params={
                "action": Transition(transition).label.lower(),
                "status": Status(competition.status).label.lower(),
            },
        )


TRANSITIONS: dict[str, dict[str, str]] = {
    Status.PENDING_APPROVAL: {
        Transition.APPROVE: Status.APPROVED,
        Transition.REJECT: Status.REJECTED,
    },
    Status.APPROVED: {
        Transition.SUBMIT_SCORES: Status.PENDING_SCORE_REVIEW,
    },
    Status.REJECTED: {},
    Status.PENDING_SCORE_REVIEW: {
        Transition.SUBMIT_SCORES: Status.PENDING_SCORE_REVIEW,
        Transition.REVIEW_SCORES: Status.COMPLETED,
        Transition.WITHDRAW_SCORES: Status.APPROVED,
    },
    Status.COMPLETED: {
        Transition.WITHDRAW_SCORES: Status.APPROVED,
    },
}

SCORE_SUBMISSION_STATUSES = frozenset(
    status for status, moves in TRANSITIONS.items() if Transition.SUBMIT_SCORES in moves
)


def allowed_transitions(competition: models.Competition) -> dict[str, str]:
    return TRANSITIONS.get(competition.status, {})


def can_submit_scores(competition: models.Competition) -> bool:
    return competition.status in SCORE_SUBMISSION_STATUSES


def can_generate_ledger(competition: models.Competition) -> bool:
    return competition.status == Status.COMPLETED


def apply_transition(
    competition: models.Competition,
    transition: str,
    *,
    actor_id: int | None = None,
) -> models.Competition:
    """Move ``competition`` along ``transition`` and stamp the audit fields.

    The caller owns the transaction; the competition is saved here and an
    :class:`AuditLog` row is written.
    """

    target = allowed_transitions(competition).get(transition)
    if target is None:
        raise InvalidTransition(competition, transition)

    previous = competition.status
    now = timezone.now()
    competition.status = target
    update_fields = ["status"]
    if transition in (Transition.APPROVE, Transition.REJECT):
        competition.reviewer_id = actor_id
        competition.reviewed_at = now
        update_fields += ["reviewer_id", "reviewed_at"]
    elif transition == Transition.SUBMIT_SCORES:
        competition.score_submitter_id = actor_id
        competition.score_created_at = now
        update_fields += ["score_submitter_id", "score_created_at"]
    elif transition == Transition.REVIEW_SCORES:
        competition.score_reviewer_id = actor_id
        competition.score_reviewed_at = now
        update_fields += ["score_reviewer_id", "score_reviewed_at"]
    elif transition == Transition.WITHDRAW_SCORES:
        competition.score_submitter_id = None
        competition.score_created_at = None
        competition.score_reviewer_id = None
        competition.score_reviewed_at = None
        update_fields += ["score_submitter_id", "score_created_at", "score_reviewer_id", "score_reviewed_at"]
    competition.save(update_fields=update_fields)

    models.AuditLog.objects.create(
        action=f"competition.{transition}",
        actor_id=actor_id,
        payload={"competition_id": competition.pk, "from": previous, "to": target},
    )
    logger.info(
        "competition %s: %s -> %s (%s by %s)", competition.pk, previous, target, transition, actor_id
    )
    return competition
