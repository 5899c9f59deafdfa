"""
Interface package: the engine side of the UCI protocol.

Modules:
    scripted_engine — Deterministic UCI engine used as a test double.
                      Reads commands from stdin, writes responses to stdout.
                      Can be run as a standalone script:
                      python interface/scripted_engine.py [--mute-go N] ...
"""
