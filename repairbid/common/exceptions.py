from fastapi import HTTPException, status


class RepairBidException(HTTPException):
    code = "REPAIRBID_ERROR"

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(RepairBidException):
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class BadRequestError(RepairBidException):
    code = "BAD_REQUEST"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ConflictError(RepairBidException):
    code = "CONFLICT"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


# ---------- Marketplace errors ----------


class RequestNotFoundError(NotFoundError):
    code = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str | None = None):
        super().__init__("Request", request_id)


class OfferNotFoundError(NotFoundError):
    code = "OFFER_NOT_FOUND"

    def __init__(self, offer_id: str | None = None):
        super().__init__("Offer", offer_id)


class WorkshopNotFoundError(NotFoundError):
    code = "WORKSHOP_NOT_FOUND"

    def __init__(self, workshop_id: str | None = None):
        super().__init__("Workshop", workshop_id)


class BookingNotFoundError(NotFoundError):
    code = "BOOKING_NOT_FOUND"

    def __init__(self, booking_id: str | None = None):
        super().__init__("Booking", booking_id)


class PayoutNotFoundError(NotFoundError):
    code = "PAYOUT_NOT_FOUND"

    def __init__(self, payout_id: str | None = None):
        super().__init__("Payout report", payout_id)


class RequestNotAcceptingOffersError(ConflictError):
    code = "REQUEST_NOT_ACCEPTING_OFFERS"

    def __init__(self, request_id: str, reason: str = "bidding window is closed"):
        super().__init__(f"Request '{request_id}' is not accepting offers: {reason}")


class DuplicateOfferError(ConflictError):
    code = "DUPLICATE_OFFER"

    def __init__(self, request_id: str, workshop_id: str):
        super().__init__(
            f"Workshop '{workshop_id}' already has an active offer on request '{request_id}'"
        )


class InvalidOfferParametersError(BadRequestError):
    code = "INVALID_OFFER_PARAMETERS"


class StaleTransitionError(ConflictError):
    code = "STALE_TRANSITION"


class WorkshopNotEligibleError(ConflictError):
    code = "WORKSHOP_NOT_ELIGIBLE"

    def __init__(self, workshop_id: str, reason: str):
        super().__init__(f"Workshop '{workshop_id}' may not bid on this request: {reason}")
