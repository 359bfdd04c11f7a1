"""
Document status state machine.

One transition table per document kind. ``converted`` is terminal and
only the conversion workflow moves a document into it.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from .errors import InvalidTransitionError, ValidationError
from .models import DocumentKind


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


S = DocumentStatus

QUOTATION_TRANSITIONS = {
    S.DRAFT: frozenset({S.SENT, S.CONVERTED}),
    S.SENT: frozenset({S.ACCEPTED, S.REJECTED, S.EXPIRED, S.CONVERTED}),
    S.ACCEPTED: frozenset({S.CONVERTED}),
    S.REJECTED: frozenset({S.CONVERTED}),
    S.EXPIRED: frozenset(),
    S.CONVERTED: frozenset(),
}

PROFORMA_TRANSITIONS = {
    S.DRAFT: frozenset({S.SENT, S.CONVERTED}),
    S.SENT: frozenset({S.ACCEPTED, S.EXPIRED, S.CONVERTED}),
    S.ACCEPTED: frozenset({S.CONVERTED}),
    S.EXPIRED: frozenset(),
    S.CONVERTED: frozenset(),
}

INVOICE_TRANSITIONS = {
    S.DRAFT: frozenset({S.SENT}),
    S.SENT: frozenset(),
}

# Conversion targets per source kind
CONVERSION_TARGETS = {
    DocumentKind.QUOTATION: (DocumentKind.PROFORMA, DocumentKind.INVOICE),
    DocumentKind.PROFORMA: (DocumentKind.INVOICE,),
    DocumentKind.INVOICE: (),
}

_ACTION_BY_TARGET = {
    DocumentKind.PROFORMA: "convert_to_proforma",
    DocumentKind.INVOICE: "convert_to_invoice",
}


def parse_status(value: Union[str, DocumentStatus]) -> DocumentStatus:
    """
    Parse a status name.

    Raises:
        ValidationError: If the name is not a known status
    """
    if isinstance(value, DocumentStatus):
        return value
    try:
        return DocumentStatus(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in DocumentStatus)
        raise ValidationError(f"Unknown status '{value}'. Valid: {valid}") from None


@dataclass(frozen=True)
class StatusMachine:
    """Transition table for one document kind."""

    kind: DocumentKind
    transitions: Mapping[DocumentStatus, frozenset]

    @classmethod
    def for_kind(cls, kind: DocumentKind) -> "StatusMachine":
        return _MACHINES[DocumentKind(kind)]

    @property
    def statuses(self) -> tuple[DocumentStatus, ...]:
        return tuple(self.transitions)

    def _known(self, status: Union[str, DocumentStatus]) -> DocumentStatus:
        parsed = parse_status(status)
        if parsed not in self.transitions:
            raise ValidationError(f"Status '{parsed.value}' does not apply to {self.kind.label}s")
        return parsed

    def can_transition(self, current, target) -> bool:
        try:
            current, target = self._known(current), self._known(target)
        except ValidationError:
            return False
        return target in self.transitions[current]

    def ensure_transition(self, current, target) -> DocumentStatus:
        """
        Check a transition and return the parsed target.

        Raises:
            InvalidTransitionError: If ``target`` is not reachable from ``current``
            ValidationError: If either status is unknown for this kind
        """
        current, target = self._known(current), self._known(target)
        if target not in self.transitions[current]:
            raise InvalidTransitionError(
                f"Cannot change {self.kind.label} status from '{current.value}' to '{target.value}'"
            )
        return target

    def can_convert(self, current) -> bool:
        return self.can_transition(current, S.CONVERTED)

    def is_terminal(self, current) -> bool:
        return not self.transitions[self._known(current)]

    def available_actions(self, current) -> list[str]:
        """Actions a user may take on a document in ``current`` status."""
        status = self._known(current)
        actions = []
        if status is S.DRAFT:
            actions.append("edit")
        if self.can_transition(status, S.SENT):
            actions.append("send")
        if self.can_transition(status, S.ACCEPTED):
            actions.append("accept")
        if self.can_convert(status):
            actions.extend(_ACTION_BY_TARGET[t] for t in CONVERSION_TARGETS[self.kind])
        actions.append("delete")
        return actions


_MACHINES = {
    kind: StatusMachine(kind, MappingProxyType(table))
    for kind, table in (
        (DocumentKind.QUOTATION, QUOTATION_TRANSITIONS),
        (DocumentKind.PROFORMA, PROFORMA_TRANSITIONS),
        (DocumentKind.INVOICE, INVOICE_TRANSITIONS),
    )
}
