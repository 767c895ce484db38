"""API Resilience Implementations.

Contains the admission throttle, the failure classifier and the retry loop
that every QuickBase request passes through.
Bounded Context: API Resilience
"""
