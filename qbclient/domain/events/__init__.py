"""Domain Event definitions.

Represents significant occurrences in the request pipeline that observers
(metrics, logging, debugging hooks) might react to.
"""
