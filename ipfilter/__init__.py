"""
IP filter - path-scoped allow/block rules by client IP range or country.
"""
