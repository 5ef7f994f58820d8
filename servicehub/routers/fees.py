"""Fee schedule endpoint. Public, no auth required."""

from fastapi import APIRouter

from servicehub.services.fees import get_fee_schedule

router = APIRouter(tags=["fees"])


@router.get("/fees")
async def fee_schedule() -> dict:
    """Current commission and guarantee terms.

    The commission is taken from the gross payment at checkout; the artisan
    receives the remainder when the customer confirms completion.
    """
    return get_fee_schedule()
