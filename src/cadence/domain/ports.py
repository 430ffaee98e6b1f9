"""
Ports (interfaces) for the host that owns the documents.

Application passes depend on these abstractions, not on a concrete vault.
"""

from abc import ABC, abstractmethod

from .models import Document


class DocumentSource(ABC):
    """
    Port for enumerating documents and reading/writing their text.

    Implementations:
        - FileSystemVault: A directory of markdown files.
    """

    @abstractmethod
    def list_documents(self) -> list[Document]:
        """Return every document with its tags, frontmatter, links and headings."""
        pass

    @abstractmethod
    async def read_text(self, path: str) -> str:
        pass

    @abstractmethod
    async def write_text(self, path: str, text: str) -> None:
        pass


class BuriedStore(ABC):
    """Port for the set of card fingerprints buried for the current day."""

    @abstractmethod
    def load(self) -> set[str]:
        pass

    @abstractmethod
    def bury(self, fingerprint: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass
