"""Word delivery pipeline: time planning, word generation and selection."""
