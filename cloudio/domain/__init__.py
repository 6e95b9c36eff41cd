"""
Domain layer package housing the value types passed between services and storage clients.
"""
