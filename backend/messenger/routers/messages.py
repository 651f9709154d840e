from fastapi import APIRouter, Depends, Response, status

from messenger.schemas.message import MarkReadRequest, SendMessageRequest, SendMessageResponse
from messenger.services.chat_service import ChatService
from messenger.services.read_receipts import ReadReceiptRecorder
from messenger.utils.dependencies import get_chat_service, get_current_user, get_read_receipts


router = APIRouter(prefix="/messages", tags=["chat"])


@router.post("", response_model=SendMessageResponse)
async def post_message(body: SendMessageRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    # conversationId is null when the client has never talked to the recipient
    message, sender = await service.send_message(
        current_user,
        recipient_id=body.recipient_id,
        text=body.text,
        conversation_id=body.conversation_id,
    )
    return SendMessageResponse(message=message, sender=sender)


@router.put("/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(body: MarkReadRequest, current_user: dict = Depends(get_current_user), recorder: ReadReceiptRecorder = Depends(get_read_receipts)):
    await recorder.mark_read(body.id, current_user["_id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
