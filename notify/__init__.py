"""notify/ -- Outbound email.

Layer rule: notify/ imports only core/ and third-party libraries.
"""
