"""auth/ -- Authentication and authorization package for the AI Tools Platform.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/, web/, or catalog/.
api/ and web/ import from auth/, not the other way around.
"""
