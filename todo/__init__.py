"""todo/ -- Owner-scoped task engine for TodoManager.

Layer rule: todo/ may import from core/ and auth/ (owner resolution).
It does NOT import from api/.
"""
