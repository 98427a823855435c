"""Bus fleet tracking and arrival prediction backend."""
