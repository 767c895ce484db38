"""Domain Models: value objects and the error taxonomy."""
