"""
Research Workflows (``erp_modules.research.workflows``).

Responsibility
--------------
Declares the contribution approval lifecycle and the per-publication-type
progress tracker sequences as ``Workflow`` value objects.  Services look
transitions up here; they never branch on status names themselves.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``erp_kernel.domain.workflow``.

Invariants enforced
-------------------
* Reviewer transitions name the permission action they require
  (``review`` or ``approve``); applicant transitions name none.
* ``changes_required -> resubmitted`` is guarded by
  ``NO_PENDING_SUGGESTIONS``; ``resubmitted`` only returns to
  ``under_review``.
* Tracker self-transitions are monthly reports.
"""

from erp_kernel.domain.workflow import Guard, Transition, Workflow
from erp_kernel.logging_config import get_logger

logger = get_logger("modules.research.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_PENDING_SUGGESTIONS = Guard(
    name="no_pending_suggestions",
    description="Every reviewer edit suggestion has been accepted or rejected",
)

TRACKER_HAS_ATTACHMENT = Guard(
    name="tracker_has_attachment",
    description="Monthly report carries at least one attachment",
)


# -----------------------------------------------------------------------------
# Contribution Workflow
# -----------------------------------------------------------------------------

CONTRIBUTION_WORKFLOW = Workflow(
    name="research_contribution",
    description="Research contribution submission and review",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "under_review",
        "changes_required",
        "resubmitted",
        "approved",
        "rejected",
        "completed",
    ),
    terminal_states=("rejected", "completed"),
    transitions=(
        Transition("draft", "submitted", action="submit", performed_by="applicant"),
        Transition("submitted", "under_review", action="start_review", permission_action="review"),
        Transition("under_review", "changes_required", action="request_changes", permission_action="review"),
        Transition("under_review", "approved", action="approve", permission_action="approve"),
        Transition("under_review", "rejected", action="reject", permission_action="approve"),
        Transition(
            "changes_required",
            "resubmitted",
            action="resubmit",
            performed_by="applicant",
            guard=NO_PENDING_SUGGESTIONS,
        ),
        Transition("resubmitted", "under_review", action="resume_review", permission_action="review"),
        Transition("approved", "completed", action="complete", permission_action="approve"),
    ),
)

logger.info(
    "research_contribution_workflow_registered",
    extra={
        "workflow_name": CONTRIBUTION_WORKFLOW.name,
        "state_count": len(CONTRIBUTION_WORKFLOW.states),
        "transition_count": len(CONTRIBUTION_WORKFLOW.transitions),
        "initial_state": CONTRIBUTION_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Progress tracker workflows, one per publication type
# -----------------------------------------------------------------------------

_TRACKER_STATES = ("writing", "communicated", "submitted", "rejected", "accepted", "published")

_TRACKER_GRAPH: dict[str, tuple[str, ...]] = {
    "writing": ("writing", "communicated"),
    "communicated": ("communicated", "writing", "submitted", "rejected"),
    "submitted": ("submitted", "rejected", "accepted"),
    "rejected": ("writing", "communicated", "submitted"),
    "accepted": ("accepted", "published"),
    "published": ("published",),
}


def _tracker_workflow(publication_type: str, description: str) -> Workflow:
    transitions = []
    for from_state in _TRACKER_STATES:
        for to_state in _TRACKER_GRAPH[from_state]:
            if from_state == to_state:
                transitions.append(
                    Transition(
                        from_state,
                        to_state,
                        action="monthly_report",
                        performed_by="owner",
                        guard=TRACKER_HAS_ATTACHMENT,
                    )
                )
            else:
                transitions.append(
                    Transition(from_state, to_state, action=f"mark_{to_state}", performed_by="owner")
                )
    return Workflow(
        name=f"{publication_type}_tracker",
        description=description,
        initial_state="writing",
        states=_TRACKER_STATES,
        transitions=tuple(transitions),
    )


RESEARCH_PAPER_TRACKER_WORKFLOW = _tracker_workflow(
    "research_paper", "Journal article from draft to publication"
)
BOOK_TRACKER_WORKFLOW = _tracker_workflow(
    "book", "Book manuscript from draft to publication"
)
BOOK_CHAPTER_TRACKER_WORKFLOW = _tracker_workflow(
    "book_chapter", "Book chapter from draft to publication"
)
CONFERENCE_PAPER_TRACKER_WORKFLOW = _tracker_workflow(
    "conference_paper", "Conference paper from draft to proceedings"
)

TRACKER_WORKFLOWS: dict[str, Workflow] = {
    "research_paper": RESEARCH_PAPER_TRACKER_WORKFLOW,
    "book": BOOK_TRACKER_WORKFLOW,
    "book_chapter": BOOK_CHAPTER_TRACKER_WORKFLOW,
    "conference_paper": CONFERENCE_PAPER_TRACKER_WORKFLOW,
}

for wf in TRACKER_WORKFLOWS.values():
    logger.info(
        "research_tracker_workflow_registered",
        extra={
            "workflow_name": wf.name,
            "state_count": len(wf.states),
            "transition_count": len(wf.transitions),
            "initial_state": wf.initial_state,
        },
    )
