'''
API endpoints for booking lessons and packages from the learner's balance.
'''
from typing import Annotated, Any, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import LessonStatus
from ..models import booking as booking_models
from ..services.security import Principal, get_current_instructor, get_current_learner, verify_token_and_get_principal
from ..services.booking_service import BookingService
from ..services.link_service import LinkService

class BookingsAPI:
    """
    Balance-paid bookings plus the learner's instructor relationships.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/bookings",
            tags=["Bookings"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/lesson",
                self.book_lesson,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.LessonBookingRead)

        self.router.add_api_route(
                "/package",
                self.book_package,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.PackageBookingRead)

        self.router.add_api_route(
                "/lessons",
                self.list_lessons,
                methods=["GET"],
                response_model=List[booking_models.LessonRead])

        self.router.add_api_route(
                "/links",
                self.list_links,
                methods=["GET"],
                response_model=List[booking_models.LinkRead])

        self.router.add_api_route(
                "/links/{instructor_id}/primary",
                self.set_primary_instructor,
                methods=["PUT"],
                response_model=booking_models.LinkRead)

        self.router.add_api_route(
                "/links/{learner_id}/balance",
                self.add_link_balance,
                methods=["POST"],
                response_model=booking_models.LinkRead)

    async def book_lesson(
        self,
        booking_data: booking_models.LessonBookingRequest,
        current_user: Annotated[Principal, Depends(get_current_learner)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Books one lesson, paid immediately from the learner's balance.
        """
        return await booking_service.book_lesson(current_user.id, booking_data)

    async def book_package(
        self,
        booking_data: booking_models.PackageBookingRequest,
        current_user: Annotated[Principal, Depends(get_current_learner)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.book_package(current_user.id, booking_data)

    async def list_lessons(
        self,
        current_user: Annotated[Principal, Depends(verify_token_and_get_principal)],
        booking_service: Annotated[BookingService, Depends(BookingService)],
        lesson_status: Annotated[Optional[LessonStatus], Query(alias="status")] = None,
    ) -> List[Any]:
        """
        The caller's lessons (as instructor or learner), optionally filtered by status.
        """
        return await booking_service.list_lessons(current_user.id, current_user.role, lesson_status)

    async def list_links(
        self,
        current_user: Annotated[Principal, Depends(get_current_learner)],
        link_service: Annotated[LinkService, Depends(LinkService)]
    ) -> List[Any]:
        return await link_service.list_links(current_user.id)

    async def set_primary_instructor(
        self,
        instructor_id: UUID,
        current_user: Annotated[Principal, Depends(get_current_learner)],
        link_service: Annotated[LinkService, Depends(LinkService)]
    ) -> Any:
        return await link_service.set_primary_instructor(current_user.id, instructor_id)

    async def add_link_balance(
        self,
        learner_id: UUID,
        change: booking_models.LinkBalanceChange,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        link_service: Annotated[LinkService, Depends(LinkService)]
    ) -> Any:
        """
        Records money a learner paid the instructor directly, on their
        relationship balance only.
        """
        return await link_service.add_link_balance(learner_id, current_user.id, change.amount)

# Instantiate the class and export its router
bookings_api = BookingsAPI()
router = bookings_api.router
