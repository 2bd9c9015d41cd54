import time

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .sessions import get_registry


@api_view(['POST'])
def ask_chatbot(request):
    """
    Send one message to the support chat.

    POST /api/chatbot/ask
    Body: {
        "message": "I need blood urgently",
        "conversation_id": "9f1c..."  # optional, for continuing conversation
    }

    The bot reply is not in the response; it lands in the transcript after
    the configured delay and is read back through /history.
    """
    user_message = request.data.get('message', '')
    if not isinstance(user_message, str) or not user_message.strip():
        return Response({'error': 'Message cannot be empty'}, status=status.HTTP_400_BAD_REQUEST)

    registry = get_registry()
    conversation_id = request.data.get('conversation_id')
    if conversation_id:
        conversation = registry.get(conversation_id)
        if conversation is None:
            return Response({'error': 'Conversation not found'}, status=status.HTTP_404_NOT_FOUND)
    else:
        conversation = registry.start()

    message = conversation.session.send(user_message)

    return Response({
        'conversation_id': conversation.id,
        'message': message.as_dict(),
        'state': conversation.session.state.value,
        'reply_delay_ms': conversation.session.reply_delay_ms,
        'timestamp': int(time.time() * 1000),
    })


@api_view(['GET'])
def get_chat_history(request):
    """
    Transcript of one conversation, plus any navigation the bot has triggered.

    GET /api/chatbot/history?conversation_id=9f1c...
    """
    conversation_id = request.GET.get('conversation_id')
    if not conversation_id:
        return Response({'error': 'conversation_id is required'}, status=status.HTTP_400_BAD_REQUEST)

    conversation = get_registry().get(conversation_id)
    if conversation is None:
        return Response({'error': 'Conversation not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(conversation.as_dict())


@api_view(['DELETE'])
def delete_conversation(request, conversation_id):
    """
    Close the chat window; pending replies are dropped.

    DELETE /api/chatbot/conversations/{id}
    """
    if not get_registry().close(conversation_id):
        return Response({'error': 'Conversation not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response({'message': 'Conversation deleted successfully'})
