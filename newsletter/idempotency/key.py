"""Validation for client-supplied idempotency keys."""

from __future__ import annotations

from dataclasses import dataclass

MAX_IDEMPOTENCY_KEY_LENGTH = 50


class InvalidIdempotencyKeyError(ValueError):
  """Raised when a client supplies an unusable idempotency key."""


@dataclass(frozen=True)
class IdempotencyKey:
  """A non-empty key of at most MAX_IDEMPOTENCY_KEY_LENGTH characters."""

  value: str

  def __post_init__(self) -> None:
    if not self.value or not self.value.strip():
      raise InvalidIdempotencyKeyError("The idempotency key cannot be empty.")
    if len(self.value) > MAX_IDEMPOTENCY_KEY_LENGTH:
      raise InvalidIdempotencyKeyError(f"The idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters long.")

  @classmethod
  def parse(cls, raw: str | None) -> IdempotencyKey:
    if raw is None:
      raise InvalidIdempotencyKeyError("The idempotency key is missing.")
    return cls(raw)

  def __str__(self) -> str:
    return self.value
