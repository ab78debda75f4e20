import uuid
from typing import Protocol


class IIDGenerator(Protocol):
    """
    Protocol for entity identifier strategies.
    Identifiers are assigned once, at construction time.
    """

    def next_id(self) -> str:
        """Generates the next unique identifier."""
        ...


class UUID4Generator(IIDGenerator):
    """
    Default ID generator using UUIDv4.
    Zero external dependencies.
    """

    def next_id(self) -> str:
        """Returns a string representation of a random UUIDv4."""
        return str(uuid.uuid4())


default_id_generator = UUID4Generator()
