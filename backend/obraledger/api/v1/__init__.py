# API v1 Package
from obraledger.api.v1 import auth, accounting, checks, treasury, system

__all__ = [
    'auth',
    'accounting',
    'checks',
    'treasury',
    'system',
]
