"""auth/ -- Authentication core for authgate.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/; configuration values are injected by
whoever constructs the components. api/ imports from auth/, not the other way
around.
"""
