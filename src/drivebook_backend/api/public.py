'''
Unauthenticated endpoints behind an instructor's public booking page.
'''
from typing import Annotated, Any, List
from fastapi import APIRouter, Depends, Query, status

from ..models import availability as availability_models
from ..models import booking as booking_models
from ..services.public_service import PublicBookingService

class PublicAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/public/instructors",
            tags=["Public"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/{username}/slots",
                self.get_slots,
                methods=["GET"],
                response_model=List[availability_models.Slot])

        self.router.add_api_route(
                "/{username}/packages",
                self.list_packages,
                methods=["GET"],
                response_model=List[booking_models.PackageRead])

        self.router.add_api_route(
                "/{username}/book",
                self.book_lesson,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.PublicBookingRead)

    async def get_slots(
        self,
        username: str,
        query: Annotated[availability_models.SlotQuery, Query()],
        public_service: Annotated[PublicBookingService, Depends(PublicBookingService)]
    ) -> List[Any]:
        """
        Bookable start times between two dates, inclusive.
        """
        return await public_service.get_available_slots(username, query)

    async def list_packages(
        self,
        username: str,
        public_service: Annotated[PublicBookingService, Depends(PublicBookingService)]
    ) -> List[Any]:
        return await public_service.list_packages(username)

    async def book_lesson(
        self,
        username: str,
        booking_data: booking_models.PublicBookingRequest,
        public_service: Annotated[PublicBookingService, Depends(PublicBookingService)]
    ) -> Any:
        return await public_service.book_lesson(username, booking_data)

# Instantiate the class and export its router
public_api = PublicAPI()
router = public_api.router
