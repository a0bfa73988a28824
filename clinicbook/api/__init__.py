"""HTTP surface for the scheduling service."""

from clinicbook.api.app import STATUS_CODES, create_app

__all__ = ["STATUS_CODES", "create_app"]
