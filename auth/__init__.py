"""auth/ -- Authentication and authorization package for Lorekeeper.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/, worlds/, or notify/.
api/ and worlds/ import from auth/, not the other way around.
"""
