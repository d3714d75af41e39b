"""
Fallback Messages

When retrieval finds nothing confident enough to answer from, the caller gets
a canned message pointing at the right contact instead of a guess. The
message is picked by a coarse keyword category of the question.
"""

import re
from enum import Enum
from typing import Optional

from ..common.audience import Audience
from ..common.config import ContactConfig


class QuestionCategory(str, Enum):
    PAYMENT = "payment"
    SCHEDULE = "schedule"
    PRICING = "pricing"
    INSURANCE = "insurance"
    FACILITY = "facility"
    SPORTS = "sports"
    GENERAL = "general"


# First match wins
CATEGORY_PATTERNS = [
    (QuestionCategory.PAYMENT, re.compile(r"pay|credit|check|cash|billing|invoice")),
    (QuestionCategory.SCHEDULE, re.compile(r"schedule|time|when|hours|pickup|drop")),
    (QuestionCategory.PRICING, re.compile(r"cost|price|fee|charge|refund|discount")),
    (QuestionCategory.INSURANCE, re.compile(r"insurance|liability|coverage")),
    (QuestionCategory.FACILITY, re.compile(r"space|facility|location|building")),
    (QuestionCategory.SPORTS, re.compile(r"swim|pool|basketball|sport")),
]


def categorize_question(question: str) -> QuestionCategory:
    lowered = (question or "").lower()
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return category
    return QuestionCategory.GENERAL


def fallback_message(
    question: str,
    audience: Audience,
    contact: Optional[ContactConfig] = None,
) -> str:
    """Canned answer for a question retrieval could not support"""
    contact = contact or ContactConfig()
    contact_line = f"Please contact {contact.organization} at {contact.phone}"
    category = categorize_question(question)

    if category == QuestionCategory.PAYMENT:
        return (
            f"For payment method options and billing questions, {contact_line} "
            f"or email {contact.billing_email}."
        )
    if category == QuestionCategory.SCHEDULE:
        who = (
            "your coach or the front desk"
            if audience == Audience.PARENT
            else f"the {contact.organization} operations team"
        )
        return (
            f"For specific schedule and timing questions, please check with {who} "
            f"at {contact.phone}."
        )
    if category == QuestionCategory.PRICING:
        return f"For detailed pricing and fee information, {contact_line} to speak with our enrollment team."
    if category == QuestionCategory.INSURANCE:
        return (
            f"For insurance requirements and coverage details, {contact_line} "
            f"or email {contact.info_email}."
        )
    if category == QuestionCategory.FACILITY:
        return f"For facility and space requirements, please contact our real estate team at {contact.phone}."
    if category == QuestionCategory.SPORTS:
        return f"For information about specific sports programs and activities, {contact_line}."
    return f"I don't have that specific information. {contact_line}."
