"""auth/ -- Authentication package for TodoManager.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or todo/.
api/ and todo/ import from auth/, not the other way around.
"""
