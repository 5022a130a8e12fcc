"""catalog/ -- Product and category catalog for Shopfront.

Layer rule: catalog/ imports only stdlib, third-party libraries, core/, and
auth.errors (the shared error taxonomy). It does NOT import from api/.
"""
