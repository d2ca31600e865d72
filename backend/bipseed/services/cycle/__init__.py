"""Cycle domain services: state machine, word ledger and timers.

This package holds the transport-free core. Socket handlers and HTTP
routes call into it; it talks back only through the ``emit`` callable it
is given.
"""
