import logging

from pydantic import BaseModel

import config
from enums.order_status import OrderStatus
from exceptions import OrderNotFoundException, OrderOwnershipException, InvalidRatingException
from models.order_rating import OrderRatingDTO
from repositories.order import OrderRepository
from repositories.order_rating import OrderRatingRepository
from services.session import SessionService

logger = logging.getLogger(__name__)


class VendorReviewsDTO(BaseModel):
    vendor_id: int
    average: float | None = None
    count: int = 0
    reviews: list[OrderRatingDTO] = []


class RatingService:
    # Orders a customer has received (or can collect) may be rated
    RATEABLE_STATUSES = {OrderStatus.READY, OrderStatus.DELIVERED, OrderStatus.COMPLETED}

    @staticmethod
    def clamp(rating: int) -> int:
        return max(1, min(config.RATING_MAX_STARS, int(rating)))

    @staticmethod
    async def save_rating(session: SessionService,
                          order_id: int,
                          rating: int,
                          review: str | None = None) -> OrderRatingDTO:
        """
        Store the customer's rating of an order, replacing an earlier one.

        The rating is clamped to 1..RATING_MAX_STARS, a blank review is
        stored as None.

        Raises:
            AuthRequiredException: No signed-in user
            OrderNotFoundException: Unknown order
            OrderOwnershipException: Order belongs to someone else
            InvalidRatingException: Order is not in a rateable status
        """
        user_id = session.require_user_id("rate order")
        order = await OrderRepository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.user_id != user_id:
            raise OrderOwnershipException(order_id, user_id)
        if order.status not in RatingService.RATEABLE_STATUSES:
            raise InvalidRatingException(order_id, order.status.value)

        review = (review or "").strip() or None
        saved = await OrderRatingRepository.upsert(OrderRatingDTO(
            order_id=order_id,
            user_id=user_id,
            vendor_id=order.vendor_id,
            rating=RatingService.clamp(rating),
            review=review
        ))
        logger.info(f"User {user_id} rated order {order_id} with {saved.rating}")
        return saved

    @staticmethod
    async def get_user_ratings(session: SessionService, order_ids: list[int] | None = None) -> dict[int, OrderRatingDTO]:
        """Ratings of the signed-in user keyed by order id."""
        user_id = session.require_user_id("load ratings")
        ratings = await OrderRatingRepository.get_by_user_id(user_id, order_ids)
        return {rating.order_id: rating for rating in ratings}

    @staticmethod
    async def get_vendor_reviews(vendor_id: int) -> VendorReviewsDTO:
        average, count = await OrderRatingRepository.get_vendor_summary(vendor_id)
        reviews = await OrderRatingRepository.get_by_vendor_id(vendor_id, config.VENDOR_REVIEWS_LIMIT)
        return VendorReviewsDTO(
            vendor_id=vendor_id,
            average=round(average, 1) if average is not None else None,
            count=count,
            reviews=reviews
        )
