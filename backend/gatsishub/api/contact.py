import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from gatsishub.exceptions import ValidationFailed
from gatsishub.services import emailer
from gatsishub.services.validation import is_valid_email, require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class ContactIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


@router.post("")
def contact(body: ContactIn):
    require_fields(
        body.model_dump(),
        {
            "name": "Name is required",
            "email": "Email is required",
            "message": "Message is required",
        },
        "All fields are required",
    )
    if not is_valid_email(body.email):
        raise ValidationFailed("Invalid email format", details={"email": "Invalid email format"})

    email_id = emailer.send_contact_message(body.name.strip(), body.email.strip(), body.message)
    logger.info("Contact form message relayed id=%s", email_id)
    return {
        "success": True,
        "message": "Your message has been sent successfully!",
        "email_id": email_id,
    }
