"""
Query Expander

Turns one question into a short, deterministic list of lexical variations.
Each variation is embedded and searched separately, so a paraphrase of a
curated question still lands on it.

Order of generation:
1. The question itself (always first)
2. The question without its trailing ? ! or .
3. Synonym substitutions (whole word, case-insensitive)
4. Rephrasings ("how much does X cost" -> "what is the cost of X", ...)

Exact duplicates are dropped and the list is capped at ``max_variations``.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

# Word -> substitutes. Every occurrence of the word is replaced.
DEFAULT_SYNONYMS: Dict[str, List[str]] = {
    "charges": ["fees", "costs", "charges"],
    "charge": ["fee", "cost", "charge"],
    "pricing": ["cost", "fee", "price", "pricing"],
    "price": ["cost", "fee", "pricing", "price"],
    "payment": ["tuition", "fee", "payment"],
    "amount": ["cost", "fee", "price", "amount"],
    "phone number": ["phone", "contact", "call"],
    "number": ["phone", "contact"],
    # Academy vocabulary
    "dash": ["Dash system", "Dash", "dashboard", "parent portal"],
    "map": ["MAP test", "MAP testing", "MAP assessment"],
    "homework": ["assignments", "home work", "hw"],
}

# (pattern, replacement). Case-insensitive, first match only.
DEFAULT_REPHRASINGS: List[Tuple[str, str]] = [
    (r"how much does (.*) cost", r"what is the cost of \1"),
    (r"what's", "what is"),
    (r"what're", "what are"),
    (r"i'm", "i am"),
    (r"tell me all", "what are all"),
    (r"tell me about", "what is"),
    (r"tell me the", "what is the"),
    (r"can you tell me", "what is"),
    (r"could you tell me", "what is"),
    (r"i need to know", "what is"),
    (r"do you know", "what is"),
    (r"please explain", "what is"),
    (r"^how much\??$", "how much does TSA cost"),
    (r"my kid is (\d+)", r"my \1 year old"),
]

_TRAILING_PUNCT = re.compile(r"[?!.]$")
_TRAILING_PUNCT_RUN = re.compile(r"[?!.]+$")
_WHITESPACE = re.compile(r"\s+")


def normalize_question(raw: Optional[str]) -> str:
    """
    Sanitize a question before embedding.

    Trims, collapses runs of whitespace to one space, and turns any run of
    trailing ? ! . into a single "?".
    """
    if not raw:
        return ""
    question = _WHITESPACE.sub(" ", raw.strip())
    return _TRAILING_PUNCT_RUN.sub("?", question)


MAX_VARIATIONS = 5


class QueryExpander:
    """Deterministic question -> variations, driven by declarative tables"""

    def __init__(
        self,
        rephrasings: Optional[Sequence[Tuple[str, str]]] = None,
        synonyms: Optional[Dict[str, List[str]]] = None,
        max_variations: int = 3,
    ):
        if not 1 <= max_variations <= MAX_VARIATIONS:
            raise ValueError(f"max_variations must be between 1 and {MAX_VARIATIONS}")
        self.max_variations = max_variations
        self._synonyms = [
            (word, re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE), subs)
            for word, subs in (DEFAULT_SYNONYMS if synonyms is None else synonyms).items()
        ]
        self._rephrasings = [
            (re.compile(pattern, re.IGNORECASE), replacement)
            for pattern, replacement in (DEFAULT_REPHRASINGS if rephrasings is None else rephrasings)
        ]

    def expand(self, question: str) -> List[str]:
        """
        Generate variations of a question.

        Returns:
            Between 1 and max_variations strings, the question first
        """
        variations = [question]

        def add(candidate: str) -> None:
            if candidate and candidate not in variations:
                variations.append(candidate)

        add(_TRAILING_PUNCT.sub("", question))

        for word, pattern, substitutes in self._synonyms:
            if not pattern.search(question):
                continue
            for substitute in substitutes:
                if substitute == word:
                    continue
                # Callable replacement keeps substitutes literal
                add(pattern.sub(lambda _m, s=substitute: s, question))

        for pattern, replacement in self._rephrasings:
            rephrased = pattern.sub(replacement, question, count=1)
            if rephrased != question:
                add(rephrased)

        return variations[: self.max_variations]
