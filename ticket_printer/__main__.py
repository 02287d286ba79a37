"""Allow running as ``python -m ticket_printer``."""

from ticket_printer.cli import main

main()
