"""core/ -- Settings, error taxonomy, logging helpers, and database plumbing.

Layer rule: core/ is the kernel. It imports nothing from api/, auth/,
worlds/, or notify/.
"""
