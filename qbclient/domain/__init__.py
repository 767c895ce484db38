"""Domain Layer: value objects, events and the ports the pipeline depends on."""
