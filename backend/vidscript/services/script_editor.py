"""
Chat-style editing of a generated script.

Sends the script, the conversation so far and the new request to the model
and expects a JSON reply with an explanation and the edited script.
"""

import logging

from vidscript.models.schemas import ChatMessage, ChatResponse
from vidscript.services.ai_clients.gemini_client import GeminiClient
from vidscript.utils.json_utils import load_json_object

logger = logging.getLogger(__name__)


def format_chat_history(history: list[ChatMessage]) -> str:
    """Render history as "User: ..." / "AI: ..." lines."""
    return "\n".join(
        f"{'User' if message.role == 'user' else 'AI'}: {message.content}"
        for message in history
    )


class ScriptEditor:
    """
    Applies chat edit requests to a script.

    Example:
        editor = ScriptEditor(client, load_prompt("chat"))
        reply = await editor.edit("Make it shorter", script, history)
        print(reply.updated_result)
    """

    def __init__(self, client: GeminiClient, prompt_template: str, model: str | None = None):
        """
        Initialize script editor.

        Args:
            client: Gemini client
            prompt_template: Template with {original_result}, {chat_history}, {message}
            model: Model for edits (client text model if None)
        """
        self.client = client
        self.prompt_template = prompt_template
        self.model = model

    async def edit(
        self,
        message: str,
        original_result: str,
        history: list[ChatMessage] | None = None,
    ) -> ChatResponse:
        """
        Edit a script according to a chat message.

        A reply that is not the expected JSON is returned as the explanation
        with the script left unchanged.

        Args:
            message: Edit request
            original_result: Current script
            history: Previous conversation turns

        Returns:
            ChatResponse with explanation and edited script
        """
        prompt = self.prompt_template.format(
            original_result=original_result,
            chat_history=format_chat_history(history or []),
            message=message,
        )
        reply = await self.client.generate_text(prompt, model=self.model)

        data = load_json_object(reply, default=None)
        if not isinstance(data, dict):
            logger.info("Chat reply is not JSON, returning raw text")
            return ChatResponse(response=reply, updated_result=original_result)

        return ChatResponse(
            response=str(data.get("response") or reply),
            updated_result=str(data.get("updatedResult") or original_result),
        )
