"""catalog/ -- Tool catalog domain models and persistence.

Layer rule: catalog/ imports only stdlib + third-party libraries + core/.
"""
