from datetime import date
from typing import Iterable, List, Optional

from models.card import FlashcardRecord
from utils.mastery import is_difficult

STUDY_MODES = ("review-only", "new-cards-only", "difficult-cards", "mixed")
DEFAULT_MAX_CARDS = 20
MIXED_REVIEW_SHARE = 0.7


def normalize_study_mode(mode: Optional[str]) -> str:
    if mode in STUDY_MODES:
        return mode
    return "review-only"


def _due_sorted(cards: List[FlashcardRecord], today: date) -> List[FlashcardRecord]:
    due = [card for card in cards if card.due_date <= today]
    return sorted(due, key=lambda card: card.due_date)


def build_review_deck(
    cards: Iterable[FlashcardRecord],
    today: date,
    mode: str = "review-only",
    max_cards: int = DEFAULT_MAX_CARDS,
    mastery_rules: Optional[dict] = None,
) -> List[FlashcardRecord]:
    """Pick the cards for one study session. Order is deterministic."""
    cards = list(cards)
    mode = normalize_study_mode(mode)
    if max_cards <= 0:
        return []
    if mode == "new-cards-only":
        return [card for card in cards if card.repetitions == 0][:max_cards]
    if mode == "difficult-cards":
        difficult = [
            card for card in cards
            if is_difficult(card.repetitions, card.easiness_factor, mastery_rules)
        ]
        return sorted(difficult, key=lambda card: card.easiness_factor)[:max_cards]
    if mode == "mixed":
        due = _due_sorted(cards, today)
        due_ids = {card.id for card in due}
        new = [card for card in cards if card.repetitions == 0 and card.id not in due_ids]
        review_count = int(max_cards * MIXED_REVIEW_SHARE)
        new_count = min(max_cards - review_count, len(new))
        selected = due[:review_count] + new[:new_count]
        # Fill unused new-card slots with further due cards.
        if len(selected) < max_cards:
            selected += due[review_count:review_count + max_cards - len(selected)]
        return selected
    return _due_sorted(cards, today)[:max_cards]
