# audit_json/__init__.py
"""
Capture d'audit JSON : historique immuable des INSERT / UPDATE / DELETE /
TRUNCATE sur les tables attachées.
"""

__version__ = "1.0.1"
