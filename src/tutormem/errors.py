"""Exceptions raised by tutormem."""


class TutormemError(Exception):
    """Base class for tutormem errors."""

    pass


class ConfigurationError(TutormemError, ValueError):
    """Raised for invalid configuration passed by the caller."""

    pass


class UnknownStrategyError(ConfigurationError):
    """Raised when a conflict strategy name is not recognised."""

    def __init__(self, strategy: object) -> None:
        super().__init__(f"Unknown conflict resolution strategy: {strategy}")
        self.strategy = strategy


class FactStoreError(TutormemError):
    """Raised when the fact store cannot complete a write or read."""

    pass


class FactNotFoundError(FactStoreError):
    """Raised when a fact id does not exist."""

    def __init__(self, fact_id: int) -> None:
        super().__init__(f"Fact not found: {fact_id}")
        self.fact_id = fact_id
