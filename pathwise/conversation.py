"""
Goal-creation dialogue as an explicit state machine.

``advance`` takes the current state and a user message and returns the next
state with a reply. Nothing is held in process memory; the caller stores the
state wherever it likes between turns.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .categorizer import Classifier, KeywordClassifier
from .models import GoalCategory, GoalPriority
from .money import format_money


class Step(str, Enum):
    IDLE = "IDLE"
    COLLECTING_NAME = "COLLECTING_NAME"
    COLLECTING_AMOUNT = "COLLECTING_AMOUNT"
    COLLECTING_DEADLINE = "COLLECTING_DEADLINE"
    COLLECTING_PRIORITY = "COLLECTING_PRIORITY"
    CONFIRMING = "CONFIRMING"


@dataclass(frozen=True)
class ConversationState:
    step: Step = Step.IDLE
    goal_name: Optional[str] = None
    target_amount: Optional[Decimal] = None
    deadline: Optional[date] = None
    priority: Optional[GoalPriority] = None
    category: Optional[GoalCategory] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "goal_name": self.goal_name,
            "target_amount": str(self.target_amount) if self.target_amount is not None else None,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "priority": self.priority.value if self.priority else None,
            "category": self.category.value if self.category else None,
        }

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "ConversationState":
        if not payload:
            return cls()
        return cls(
            step=Step(payload.get("step", Step.IDLE.value)),
            goal_name=payload.get("goal_name"),
            target_amount=Decimal(payload["target_amount"]) if payload.get("target_amount") else None,
            deadline=date.fromisoformat(payload["deadline"]) if payload.get("deadline") else None,
            priority=GoalPriority(payload["priority"]) if payload.get("priority") else None,
            category=GoalCategory(payload["category"]) if payload.get("category") else None,
        )


@dataclass(frozen=True)
class GoalDraft:
    """A confirmed goal ready to be created by the service"""

    name: str
    target_amount: Decimal
    deadline: date
    priority: GoalPriority
    category: GoalCategory


@dataclass(frozen=True)
class Reply:
    text: str
    draft: Optional[GoalDraft] = None
    # True when the message is free-form chat for the text-generation collaborator.
    delegate: bool = False
    goal_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.text, "delegate": self.delegate, "goal_id": self.goal_id}


HELP_PHRASES = ("don't know", "not sure", "idk", "no idea", "suggest", "help", "estimate")

GOAL_IDEAS = (
    "Here are some popular goals to inspire you:\n\n"
    "- Car: Toyota Camry (~BD 8,000), Honda Accord (~BD 9,500), Tesla Model 3 (~BD 14,000)\n"
    "- House: apartment down payment (~BD 20,000-40,000)\n"
    "- Travel: Japan (~BD 1,500), Europe (~BD 2,500)\n"
    "- Education: Masters degree (~BD 5,000-15,000)\n"
    "- Emergency fund: 6 months of expenses (~BD 3,000-6,000)\n\n"
    "Which one appeals to you? Or tell me your own idea!"
)

AMOUNT_HINTS = {
    GoalCategory.VEHICLE: "Typical car prices: Toyota Camry ~BD 8,000, Honda Accord ~BD 9,500, "
                          "Tesla Model 3 ~BD 14,000. How much would you like to save?",
    GoalCategory.PROPERTY: "Typical down payments: studio ~BD 15,000, 1-bedroom ~BD 20,000, "
                           "2-bedroom ~BD 30,000. How much are you targeting?",
    GoalCategory.TRAVEL: "Typical travel budgets: weekend Gulf trip ~BD 500, Japan ~BD 1,500, "
                         "Europe ~BD 2,500. How much would you like to save?",
}


def _asks_for_help(message: str) -> bool:
    lower = message.lower()
    return any(phrase in lower for phrase in HELP_PHRASES)


def _parse_amount(message: str) -> Optional[Decimal]:
    cleaned = re.sub(r"[^0-9.]", "", message)
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return amount if amount > 0 else None


def advance(state: ConversationState, message: str, today: Optional[date] = None,
            classifier: Optional[Classifier] = None) -> Tuple[ConversationState, Reply]:
    """
    Move the dialogue one step forward

    Args:
        state: Current state (IDLE for a fresh conversation)
        message: The user's message
        today: Reference date for deadline validation (default: today)
        classifier: Intent and category classifier

    Returns:
        (next state, reply)
    """
    classifier = classifier or KeywordClassifier()
    today = today or date.today()
    text = (message or "").strip()
    replace = dataclasses.replace

    if state.step == Step.IDLE:
        if classifier.wants_goal(text):
            return replace(state, step=Step.COLLECTING_NAME), Reply(
                "Let's set up your new goal!\n\nWhat would you like to name it? "
                "For example: 'Buy a Car', 'Travel to Japan', 'Emergency Fund'"
            )
        return state, Reply(text, delegate=True)

    if state.step == Step.COLLECTING_NAME:
        if _asks_for_help(text) or not text:
            return state, Reply(GOAL_IDEAS)
        return replace(state, step=Step.COLLECTING_AMOUNT, goal_name=text), Reply(
            f"Great choice, {text}!\n\nHow much do you need to save in total? "
            "If you're not sure, I can help you estimate."
        )

    if state.step == Step.COLLECTING_AMOUNT:
        if _asks_for_help(text):
            hint = AMOUNT_HINTS.get(classifier.goal_category(state.goal_name or ""),
                                    "How much would you like to save in total?")
            return state, Reply(hint)
        amount = _parse_amount(text)
        if amount is None:
            return state, Reply("Please enter a valid amount, for example: 5000")
        return replace(state, step=Step.COLLECTING_DEADLINE, target_amount=amount), Reply(
            f"BD {format_money(amount)} noted!\n\nBy when do you want to achieve this goal? "
            "Please enter a date (YYYY-MM-DD), for example: 2027-06-01"
        )

    if state.step == Step.COLLECTING_DEADLINE:
        try:
            deadline = date.fromisoformat(text)
        except ValueError:
            return state, Reply("Please enter the date in YYYY-MM-DD format. Example: 2027-06-01")
        if deadline <= today:
            return state, Reply("That date is not in the future! Please enter a future date (YYYY-MM-DD).")
        return replace(state, step=Step.COLLECTING_PRIORITY, deadline=deadline), Reply(
            f"Deadline set to {deadline.isoformat()}.\n\nWhat's the priority of this goal? "
            "HIGH, MEDIUM or LOW?"
        )

    if state.step == Step.COLLECTING_PRIORITY:
        try:
            priority = GoalPriority(text.upper())
        except ValueError:
            return state, Reply("Please reply with HIGH, MEDIUM, or LOW.")
        category = classifier.goal_category(state.goal_name or "")
        nxt = replace(state, step=Step.CONFIRMING, priority=priority, category=category)
        return nxt, Reply(
            "Here's your goal summary:\n\n"
            f"- Name: {nxt.goal_name}\n"
            f"- Target: BD {format_money(nxt.target_amount)}\n"
            f"- Deadline: {nxt.deadline.isoformat()}\n"
            f"- Priority: {priority.value}\n"
            f"- Category: {category.value}\n\n"
            "Shall I create this goal for you? (Y/N)"
        )

    # CONFIRMING
    answer = text.upper()
    if answer in ("Y", "YES"):
        draft = GoalDraft(
            name=state.goal_name,
            target_amount=state.target_amount,
            deadline=state.deadline,
            priority=state.priority,
            category=state.category or GoalCategory.OTHER,
        )
        return ConversationState(), Reply(
            f"Goal created! {state.goal_name} is now in your dashboard.", draft=draft
        )
    if answer in ("N", "NO"):
        return ConversationState(), Reply("No problem! The goal was not created.")
    return state, Reply("Please reply with Y to create the goal or N to cancel.")
