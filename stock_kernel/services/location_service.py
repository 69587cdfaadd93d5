"""
LocationService -- registration and deactivation of stock locations.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Location codes are unique (database constraint).
    - Deactivated locations reject new movements (LedgerService) but keep
      their history and their remaining positions readable.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.exceptions import InvalidMovement, LocationNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.location import Location, LocationType
from stock_kernel.services.base import BaseService

logger = get_logger("services.location")


class LocationService(BaseService[Location]):
    def create(
        self,
        code: str,
        name: str,
        location_type: LocationType | str,
    ) -> UUID:
        """Register a location.  Returns its id."""
        try:
            kind = LocationType(location_type)
        except ValueError:
            raise InvalidMovement(
                f"unknown location type '{location_type}'",
                location_type=str(location_type),
            ) from None

        location = Location(
            code=code,
            name=name,
            location_type=kind.value,
            is_active=True,
            created_by_id=self.actor_id,
        )
        self.session.add(location)
        self.session.flush()

        logger.info(
            "location_created",
            extra={"location_id": str(location.id), "code": code, "location_type": kind.value},
        )
        return location.id

    def deactivate(self, location_id: UUID) -> None:
        location = self.session.get(Location, location_id)
        if location is None:
            raise LocationNotFoundError(str(location_id))
        location.is_active = False
        self.session.flush()
        logger.info("location_deactivated", extra={"location_id": str(location_id)})

    def id_for_code(self, code: str) -> UUID:
        """
        Raises:
            LocationNotFoundError: If no location has this code.
        """
        location_id = self.session.scalar(select(Location.id).where(Location.code == code))
        if location_id is None:
            raise LocationNotFoundError(code)
        return location_id
