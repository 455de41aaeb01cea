"""Error taxonomy surfaced by the storage layer.

Driver exceptions are translated once, in ``Database``; everything above it
sees only these types. The original asyncpg exception is kept as
``__cause__``.
"""


class StoreError(Exception):
    """Base exception for row store failures."""


class ConstraintViolation(StoreError):
    """Insert/update rejected by a uniqueness, foreign key or not-null constraint."""


class StoreUnavailable(StoreError):
    """The store could not be reached. State is unknown but unchanged; retry is safe."""


class StoreConflict(StoreError):
    """Transaction aborted by a serialization failure or deadlock."""


class NotFound(StoreError):
    """A point update matched no row."""

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} {key!r} not found")
        self.entity = entity
        self.key = key
