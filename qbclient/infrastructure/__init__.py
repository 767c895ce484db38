"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the pipeline to the outside world (HTTP, credentials, configuration,
logging) by implementing the interfaces defined in the domain layer.
"""
