"""
Outbound message composer.

A message is a greeting, a blank line, one category sentence and a closing
signature block. Each slot is picked at random from a fixed pool. None of
the templates contain a relationship keyword from companion.policy, so the
composed text never claims a family tie.
"""

import random
from typing import Optional

from companion.models import MessageCategory
from companion.policy import find_impersonation_keyword

SIGNATURE = "Dignity Dialogue"

GREETINGS = (
    "Hello {name},",
    "Dear {name},",
    "Hi {name},",
)

GENERIC_SENTENCE = "We wanted to reach out and send you warm thoughts."

CATEGORY_SENTENCES = {
    MessageCategory.BIRTHDAY: (
        "We hope this message finds you well on your special day!",
        "Wishing you a wonderful birthday filled with joy and happiness.",
        "May your birthday bring you plenty of smiles.",
    ),
    MessageCategory.HOLIDAY: (
        "Wishing you peace and joy during the holidays.",
        "We hope you're doing well and surrounded by warmth this holiday.",
        "May this holiday bring you comfort and happiness.",
    ),
    MessageCategory.CHECK_IN: (
        "We wanted to check in and see how you're doing.",
        "Thinking of you and hoping you're having a good day.",
        GENERIC_SENTENCE,
    ),
    MessageCategory.ENCOURAGEMENT: (
        "We wanted to send you some encouragement and let you know someone is thinking of you.",
        "You are valued and cared for. We hope this message brightens your day.",
        "Sending you positive thoughts and encouragement today.",
    ),
}

CLOSINGS = (
    f"With warm regards,\n{SIGNATURE}",
    f"Best wishes,\n{SIGNATURE}",
    f"Sincerely,\n{SIGNATURE} Companion Care",
)


def _category_pool(category: str, category_other: Optional[str]):
    try:
        pool = CATEGORY_SENTENCES.get(MessageCategory(category))
    except ValueError:
        pool = None
    if pool:
        return pool

    # "other" and unknown categories use the requester's qualifier when it is clean
    qualifier = (category_other or "").strip()
    if qualifier and find_impersonation_keyword(qualifier) is None:
        return (qualifier,)
    return (GENERIC_SENTENCE,)


def generate_message(
    recipient_name: str,
    category: str,
    category_other: Optional[str] = None,
    personality_text: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Compose the text sent to the recipient.

    personality_text is accepted for parity with the policy check; no
    template uses it yet.
    """
    rng = rng or random
    greeting = rng.choice(GREETINGS).format(name=recipient_name)
    sentence = rng.choice(_category_pool(category, category_other))
    closing = rng.choice(CLOSINGS)
    return f"{greeting}\n\n{sentence}\n\n{closing}"
