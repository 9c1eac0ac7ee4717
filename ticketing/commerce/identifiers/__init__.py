from ticketing.commerce.identifiers.service import IdentifierIssuer, TicketIssue

__all__ = ["IdentifierIssuer", "TicketIssue"]
