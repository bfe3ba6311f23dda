"""auth/ -- Identity, API tokens, and sign-in for pkgfeed.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or registry/.
api/ imports from auth/, not the other way around.
"""
