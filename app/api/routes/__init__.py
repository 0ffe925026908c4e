"""
API Routes Package
"""
from . import (
    health,
    jobs,
)
