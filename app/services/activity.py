# app/services/activity.py
"""
Simulazione "cosmetica" di spettatori e chat durante una diretta.

Strategia iniettata nel LiveSessionManager: la macchina a stati non dipende
da questi numeri, per cui si può sostituire con un feed di presenza reale.
"""
from __future__ import annotations

import random
from typing import Optional, Protocol, Sequence, Tuple

SAMPLE_MESSAGES = (
    "Great session! 👏",
    "Thank you for the update",
    "When is the next meeting?",
    "Very informative",
    "Keep up the good work",
    "Excellent leadership",
    "Looking forward to more sessions",
)

SAMPLE_USERNAMES = (
    "RameshSharma",
    "PriyaGupta",
    "VikasKumar",
    "SunitaVerma",
    "AjayThakur",
    "MeeraJoshi",
    "RajeshPatel",
    "KavitaSingh",
)


class ActivitySimulator(Protocol):
    def seed_viewers(self) -> int:
        ...

    def next_viewer_count(self, current: int) -> int:
        ...

    def maybe_chat_message(self) -> Optional[Tuple[str, str]]:
        ...


class RandomActivitySimulator:
    """
    - seed: 10..59 spettatori iniziali
    - ogni step: variazione casuale -5..+4, mai sotto zero
    - chat: ~10% di probabilità di un messaggio per step
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        chat_probability: float = 0.1,
        messages: Sequence[str] = SAMPLE_MESSAGES,
        usernames: Sequence[str] = SAMPLE_USERNAMES,
    ):
        self.rng = rng or random.Random()
        self.chat_probability = chat_probability
        self.messages = messages
        self.usernames = usernames

    def seed_viewers(self) -> int:
        return self.rng.randint(10, 59)

    def next_viewer_count(self, current: int) -> int:
        return max(0, current + self.rng.randint(-5, 4))

    def maybe_chat_message(self) -> Optional[Tuple[str, str]]:
        if self.rng.random() >= self.chat_probability:
            return None
        return self.rng.choice(self.usernames), self.rng.choice(self.messages)


class NullActivitySimulator:
    """Nessuna simulazione: contatore fermo a zero, nessun messaggio."""

    def seed_viewers(self) -> int:
        return 0

    def next_viewer_count(self, current: int) -> int:
        return current

    def maybe_chat_message(self) -> Optional[Tuple[str, str]]:
        return None
