"""Business logic services.

Import from the submodules directly (``from app.services.task_service
import ...``). The real-time layer imports ``auth_service`` while the
services below import the real-time layer, so this package re-exports
nothing to keep that cycle from forming at import time.
"""
