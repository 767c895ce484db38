"""Domain Interfaces (Ports):

Defines the contracts (Abstract Base Classes) that infrastructure components
must implement. The request pipeline depends on these interfaces, not on
concrete transports, auth schemes or throttles.
"""
