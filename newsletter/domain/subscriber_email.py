"""Parsing of stored subscriber addresses before delivery."""

from __future__ import annotations

from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email


class InvalidSubscriberEmailError(ValueError):
  """Raised when a stored address cannot be used as a recipient."""


@dataclass(frozen=True)
class SubscriberEmail:
  """A syntactically valid recipient address."""

  value: str

  @classmethod
  def parse(cls, raw: str) -> SubscriberEmail:
    # Deliverability (DNS) checks belong to signup, not to every send.
    try:
      validated = validate_email(raw, check_deliverability=False)
    except EmailNotValidError as exc:
      raise InvalidSubscriberEmailError(f"{raw!r} is not a valid subscriber email: {exc}") from exc
    return cls(validated.normalized)

  def __str__(self) -> str:
    return self.value
