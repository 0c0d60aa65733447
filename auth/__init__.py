"""auth/ -- Authentication and authorization package for the Community Management API.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/ for
configuration hand-off (TokenCodec.from_settings).
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
