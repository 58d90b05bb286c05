"""Chess puzzle trainer: solver, scoring, progress and play modes."""
