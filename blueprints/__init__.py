"""
blueprints - JSON route handlers
"""
