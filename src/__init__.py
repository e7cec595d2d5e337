"""
m3u8-resolver
Resolves content codes into HLS manifest URLs with a headless browser and
serves them through a caching, URI-rewriting reverse proxy.
"""

__version__ = "1.0.0"
__description__ = "HLS manifest resolver and rewriting proxy"
