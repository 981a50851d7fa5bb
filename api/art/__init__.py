"""
Pixel-art submissions: keys, persistence, service and HTTP routes.
"""
