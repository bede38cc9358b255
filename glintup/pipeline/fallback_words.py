"""
Static fallback vocabulary.

Used when the generation provider is unavailable or errors. Bump
FALLBACK_POOL_VERSION whenever entries change so history references stay
distinguishable across releases.
"""

from dataclasses import dataclass

FALLBACK_POOL_VERSION = "v1"
GENERIC_POOL = "general"


@dataclass(frozen=True)
class FallbackWord:
    word: str
    definition: str
    example: str
    part_of_speech: str | None = None
    memory_hook: str | None = None


FALLBACK_POOLS: dict[str, tuple[FallbackWord, ...]] = {
    "business": (
        FallbackWord(
            "leverage",
            "To use something to maximum advantage.",
            "We can leverage our existing network to reach new clients.",
            "verb",
            "A lever lifts more than your hands can.",
        ),
        FallbackWord(
            "synergy",
            "Combined effort that produces more than the sum of its parts.",
            "The merger created synergy between the two sales teams.",
            "noun",
        ),
        FallbackWord(
            "stakeholder",
            "A person with an interest or concern in a business.",
            "Every stakeholder was invited to review the proposal.",
            "noun",
        ),
        FallbackWord(
            "benchmark",
            "A standard against which things are measured.",
            "Last quarter's revenue is the benchmark for this year.",
            "noun",
        ),
        FallbackWord(
            "scalable",
            "Able to grow without losing effectiveness.",
            "They built a scalable process that works for ten or ten thousand orders.",
            "adjective",
        ),
        FallbackWord(
            "pivot",
            "To change strategy in a fundamental way.",
            "The startup decided to pivot from hardware to software.",
            "verb",
        ),
        FallbackWord(
            "diligence",
            "Careful and persistent work or effort.",
            "Due diligence revealed several risks in the acquisition.",
            "noun",
        ),
        FallbackWord(
            "incentivize",
            "To motivate with a reward.",
            "The bonus scheme incentivizes early renewals.",
            "verb",
        ),
    ),
    "exam": (
        FallbackWord(
            "ubiquitous",
            "Present, appearing, or found everywhere.",
            "Smartphones have become ubiquitous in modern life.",
            "adjective",
            "You-BIK-witous: you see it everywhere.",
        ),
        FallbackWord(
            "ephemeral",
            "Lasting for a very short time.",
            "The beauty of the sunset was ephemeral.",
            "adjective",
        ),
        FallbackWord(
            "pragmatic",
            "Dealing with things sensibly and realistically.",
            "She took a pragmatic approach to the problem.",
            "adjective",
        ),
        FallbackWord(
            "meticulous",
            "Showing great attention to detail.",
            "He kept meticulous notes during every lecture.",
            "adjective",
        ),
        FallbackWord(
            "ambivalent",
            "Having mixed feelings about something.",
            "She felt ambivalent about moving to a new city.",
            "adjective",
        ),
        FallbackWord(
            "corroborate",
            "To confirm or give support to a statement or theory.",
            "The witness was able to corroborate his alibi.",
            "verb",
        ),
        FallbackWord(
            "eloquent",
            "Fluent or persuasive in speaking or writing.",
            "Her eloquent speech moved the entire audience.",
            "adjective",
        ),
        FallbackWord(
            "resilient",
            "Able to recover quickly from difficulties.",
            "Children are often remarkably resilient.",
            "adjective",
        ),
    ),
    "slang": (
        FallbackWord(
            "lowkey",
            "Quietly or secretly; to a small degree.",
            "I'm lowkey excited about the trip.",
            "adverb",
        ),
        FallbackWord(
            "salty",
            "Bitter or upset, usually over something minor.",
            "He's still salty about losing the match.",
            "adjective",
        ),
        FallbackWord(
            "ghost",
            "To suddenly stop all communication with someone.",
            "She ghosted him after their second date.",
            "verb",
        ),
        FallbackWord(
            "vibe",
            "The feeling or atmosphere of a person, place or thing.",
            "This cafe has a really relaxed vibe.",
            "noun",
        ),
        FallbackWord(
            "flex",
            "To show off.",
            "Posting his new car online was a total flex.",
            "verb",
        ),
        FallbackWord(
            "cap",
            "A lie; 'no cap' means no lie.",
            "That was the best pizza I've ever had, no cap.",
            "noun",
        ),
    ),
    "general": (
        FallbackWord(
            "mellifluous",
            "Sweet or musical; pleasant to hear.",
            "The singer's mellifluous voice filled the hall.",
            "adjective",
            "Mel (honey) + fluous (flowing): honey-flowing sound.",
        ),
        FallbackWord(
            "serendipity",
            "The occurrence of happy events by chance.",
            "Finding that bookshop was pure serendipity.",
            "noun",
        ),
        FallbackWord(
            "candid",
            "Truthful and straightforward; frank.",
            "Thank you for your candid feedback.",
            "adjective",
        ),
        FallbackWord(
            "tenacious",
            "Tending to keep a firm hold; persistent.",
            "Her tenacious efforts finally paid off.",
            "adjective",
        ),
        FallbackWord(
            "benevolent",
            "Well meaning and kindly.",
            "The benevolent donor funded the new library.",
            "adjective",
        ),
        FallbackWord(
            "nostalgia",
            "A sentimental longing for the past.",
            "Old songs fill me with nostalgia.",
            "noun",
        ),
        FallbackWord(
            "gregarious",
            "Fond of company; sociable.",
            "He was gregarious and loved hosting dinners.",
            "adjective",
        ),
        FallbackWord(
            "frugal",
            "Sparing or economical with money or food.",
            "Living frugally helped them save for a house.",
            "adjective",
        ),
    ),
}


def pool_for(category: str) -> tuple[FallbackWord, ...]:
    """Dedicated pool for a category, the generic pool for anything else."""
    key = (category or "").strip().lower()
    return FALLBACK_POOLS.get(key) or FALLBACK_POOLS[GENERIC_POOL]


def fallback_ref(category: str, word: str) -> str:
    """Stable history reference for a fallback entry."""
    return f"fallback:{FALLBACK_POOL_VERSION}:{category}:{word.lower()}"
