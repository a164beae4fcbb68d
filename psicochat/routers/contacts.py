from fastapi import APIRouter, Depends

from psicochat.controller import ChatController
from psicochat.dependencies import get_controller, raise_for_failure
from psicochat.schemas.views import ContactsView, ContactView

router = APIRouter()


@router.get("", response_model=ContactsView)
async def get_contacts(controller: ChatController = Depends(get_controller)):
    """People the caller may start a chat with. Partial results come with warnings."""
    contacts = await controller.load_contacts()
    if contacts is None:
        raise_for_failure(controller)

    warnings = [n.text for n in controller.take_notices() if n.level == "warning"]
    return ContactsView(
        contacts=[ContactView(id=c.id, display_name=c.display_name, email=c.email, role=c.role) for c in contacts],
        warnings=warnings,
    )
