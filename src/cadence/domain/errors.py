class CadenceError(Exception):
    """Base class for errors surfaced to the CLI and HTTP layers."""


class NoteNotReviewableError(CadenceError):
    def __init__(self, path: str):
        super().__init__(f"{path} is not tagged for review")
        self.path = path


class CardNotFoundError(CadenceError):
    def __init__(self, path: str, card_text: str):
        super().__init__(f"Card no longer present in {path}: {card_text[:60]!r}")
        self.path = path
        self.card_text = card_text
