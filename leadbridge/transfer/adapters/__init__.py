"""Source adapters for the transfer engine."""
