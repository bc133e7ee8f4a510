"""Payment mechanisms (scheme implementations per network family)."""
