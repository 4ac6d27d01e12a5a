"""auth/ -- Authentication, session and role core for HarborDesk.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way
around; only auth/dependencies.py knows about FastAPI.
"""
