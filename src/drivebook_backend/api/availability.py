'''
API endpoints for an instructor's own availability.
'''
from datetime import date
from typing import Annotated, Any, List, Optional
from fastapi import APIRouter, Depends, status, Response

from ..models import availability as availability_models
from ..services.security import Principal, get_current_instructor
from ..services.availability_service import AvailabilityService

class AvailabilityAPI:
    """
    Weekly pattern and date overrides for the signed-in instructor.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/availability",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/weekly",
                self.get_weekly,
                methods=["GET"],
                response_model=List[availability_models.WeeklyDayRead])

        self.router.add_api_route(
                "/weekly",
                self.update_weekly,
                methods=["PUT"],
                response_model=List[availability_models.WeeklyDayRead])

        self.router.add_api_route(
                "/overrides",
                self.list_overrides,
                methods=["GET"],
                response_model=List[availability_models.OverrideRead])

        self.router.add_api_route(
                "/overrides",
                self.create_override,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=availability_models.OverrideRead)

        self.router.add_api_route(
                "/overrides/{override_date}",
                self.delete_override,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

    async def get_weekly(
        self,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        """
        Returns all seven days, creating defaults on first read.
        """
        return await availability_service.get_weekly_availability(current_user.id)

    async def update_weekly(
        self,
        update_data: availability_models.WeeklyAvailabilityUpdate,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        return await availability_service.update_weekly_availability(current_user.id, update_data)

    async def list_overrides(
        self,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Any]:
        return await availability_service.get_overrides(current_user.id, from_date, to_date)

    async def create_override(
        self,
        override_data: availability_models.OverrideCreate,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> Any:
        """
        Creates or replaces the override for a date.
        """
        return await availability_service.create_override(current_user.id, override_data)

    async def delete_override(
        self,
        override_date: date,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        await availability_service.delete_override(current_user.id, override_date)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
