"""auth/ -- Authentication package for TodoVault.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or todos/.
api/ imports from auth/, not the other way around.
"""
