from claimletter.repositories.letters import InMemoryLettersRepository, PostgresLettersRepository

__all__ = [
    "InMemoryLettersRepository",
    "PostgresLettersRepository",
]
