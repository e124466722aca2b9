"""Question allocation engine for exam packages."""
