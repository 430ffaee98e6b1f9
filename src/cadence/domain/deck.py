"""
Hierarchical deck tree for flashcards.

Each node is keyed by a path segment. Aggregate counts on a node always
include every card stored in its descendants; they are updated along the
walked path on every insertion, so no read-time summing is needed.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from cadence.domain.models import Card


@dataclass
class Deck:
    deck_name: str
    new_flashcards: list[Card] = field(default_factory=list)
    due_flashcards: list[Card] = field(default_factory=list)
    subdecks: list["Deck"] = field(default_factory=list)

    # Aggregates over this node and all descendants
    new_flashcards_count: int = 0
    due_flashcards_count: int = 0
    not_due_flashcards_count: int = 0
    total_flashcards: int = 0

    def get_subdeck(self, name: str) -> "Deck | None":
        for deck in self.subdecks:
            if deck.deck_name == name:
                return deck
        return None

    def _child(self, name: str) -> "Deck":
        deck = self.get_subdeck(name)
        if deck is None:
            deck = Deck(name)
            self.subdecks.append(deck)
        return deck

    def _walk(self, deck_path: Sequence[str]) -> list["Deck"]:
        """Return every node from self down to the leaf, creating missing ones."""
        nodes = [self]
        node = self
        for segment in deck_path:
            node = node._child(segment)
            nodes.append(node)
        return nodes

    def create_deck(self, deck_path: Sequence[str]) -> "Deck":
        return self._walk(deck_path)[-1]

    def insert_flashcard(self, deck_path: Sequence[str], card: Card) -> None:
        nodes = self._walk(deck_path)
        for node in nodes:
            if card.is_due:
                node.due_flashcards_count += 1
            else:
                node.new_flashcards_count += 1
            node.total_flashcards += 1

        leaf = nodes[-1]
        if card.is_due:
            leaf.due_flashcards.append(card)
        else:
            leaf.new_flashcards.append(card)

    def count_flashcard(self, deck_path: Sequence[str], n: int = 1) -> None:
        """Count cards that exist but are not due (or are buried) without storing them."""
        for node in self._walk(deck_path):
            node.not_due_flashcards_count += n
            node.total_flashcards += n

    def remove_card(self, deck_path: Sequence[str], index: int, is_due: bool) -> Card:
        """Remove a reviewed card from the leaf and update counts along the path."""
        nodes = [self]
        for segment in deck_path:
            child = nodes[-1].get_subdeck(segment)
            if child is None:
                raise KeyError("/".join(deck_path))
            nodes.append(child)

        leaf = nodes[-1]
        card = leaf.due_flashcards.pop(index) if is_due else leaf.new_flashcards.pop(index)
        for n in nodes:
            if is_due:
                n.due_flashcards_count -= 1
            else:
                n.new_flashcards_count -= 1
            n.total_flashcards -= 1
        return card

    def sort_subdecks_list(self) -> None:
        self.subdecks.sort(key=lambda d: d.deck_name.lower())
        for deck in self.subdecks:
            deck.sort_subdecks_list()

    def iter_decks(self, prefix: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], "Deck"]]:
        """Yield (path, deck) for every descendant in depth-first order."""
        for deck in self.subdecks:
            path = (*prefix, deck.deck_name)
            yield path, deck
            yield from deck.iter_decks(path)

    def to_dict(self) -> dict:
        return {
            "name": self.deck_name,
            "due": self.due_flashcards_count,
            "new": self.new_flashcards_count,
            "not_due": self.not_due_flashcards_count,
            "total": self.total_flashcards,
            "subdecks": [d.to_dict() for d in self.subdecks],
        }
