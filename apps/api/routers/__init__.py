"""Routers package."""

from . import (
    health,
    credits,
    team,
    admin,
)
