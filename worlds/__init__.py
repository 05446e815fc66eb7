"""worlds/ -- Projects and the entities inside them.

Layer rule: worlds/ imports from core/ and auth/ (guard and models), never
from api/ or notify/.
"""
