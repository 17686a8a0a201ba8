'''
API endpoints for the lesson lifecycle after booking.
'''
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import APIRouter, Body, Depends

from ..core.pricing import CancellationQuote
from ..models import booking as booking_models
from ..services.security import Principal, get_current_instructor, verify_token_and_get_principal
from ..services.booking_service import BookingService

class LessonsAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/lessons",
            tags=["Lessons"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/{lesson_id}/cancellation-preview",
                self.preview_cancellation,
                methods=["GET"],
                response_model=CancellationQuote)

        self.router.add_api_route(
                "/{lesson_id}/cancel",
                self.cancel_lesson,
                methods=["POST"],
                response_model=booking_models.LessonRead)

        self.router.add_api_route(
                "/{lesson_id}/complete",
                self.complete_lesson,
                methods=["POST"],
                response_model=booking_models.LessonRead)

        self.router.add_api_route(
                "/{lesson_id}/no-show",
                self.mark_no_show,
                methods=["POST"],
                response_model=booking_models.LessonRead)

    async def preview_cancellation(
        self,
        lesson_id: UUID,
        current_user: Annotated[Principal, Depends(verify_token_and_get_principal)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        What cancelling now would cost, without cancelling.
        """
        return await booking_service.preview_cancellation(lesson_id, current_user.id, current_user.role)

    async def cancel_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[Principal, Depends(verify_token_and_get_principal)],
        booking_service: Annotated[BookingService, Depends(BookingService)],
        cancel_data: Optional[booking_models.CancelLessonRequest] = None,
    ) -> Any:
        """
        Cancels a scheduled lesson as its instructor or learner.
        """
        reason = cancel_data.reason if cancel_data else None
        return await booking_service.cancel_lesson(lesson_id, current_user.id, current_user.role, reason)

    async def complete_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        booking_service: Annotated[BookingService, Depends(BookingService)],
        instructor_notes: Annotated[Optional[str], Body(embed=True)] = None,
    ) -> Any:
        return await booking_service.complete_lesson(lesson_id, current_user.id, instructor_notes)

    async def mark_no_show(
        self,
        lesson_id: UUID,
        current_user: Annotated[Principal, Depends(get_current_instructor)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.mark_no_show(lesson_id, current_user.id)

# Instantiate the class and export its router
lessons_api = LessonsAPI()
router = lessons_api.router
