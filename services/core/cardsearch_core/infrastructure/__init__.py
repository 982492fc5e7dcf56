"""Infrastructure components for CardSearch.

This package contains infrastructure-level components like:
- The PostgreSQL text index backend
- The system-of-record entity source
- Search rate limiting
"""
