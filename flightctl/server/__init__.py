"""
Status server module
"""

from .api import APIServer, create_api_server, FLASK_AVAILABLE

__all__ = ['APIServer', 'create_api_server', 'FLASK_AVAILABLE']
