"""ticket-printer - prints Trello cards and Jira issues on small labels.

Tickets carrying a configured label are claimed (the label is removed),
rendered to a one-page PDF card with a QR code linking back to the
ticket, and sent to a label printer through CUPS. If anything fails the
label is put back on every ticket of the cycle.

Usage:
    ticket-printer generate-config > ticket_printer.toml
    ticket-printer run
    ticket-printer run --poll 60
    ticket-printer print-config
"""

__version__ = "0.1.0"
